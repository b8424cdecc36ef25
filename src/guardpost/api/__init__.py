# HTTP transport binding (FastAPI).
# Created: 2026-03-14
