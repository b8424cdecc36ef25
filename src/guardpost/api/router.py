# FastAPI binding for the engine endpoints.
# Created: 2026-03-14
#
# Translates Starlette requests into HttpRequest and HttpResponse back into
# Starlette responses. Endpoints run in the threadpool (the engine is sync).

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from guardpost.http import HttpRequest, HttpResponse
from guardpost.server import AuthorizationServer

logger = logging.getLogger(__name__)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def to_http_request(request: Request) -> HttpRequest:
    content_type = request.headers.get("content-type", "")
    form: dict[str, str] = {}
    json_body = None
    if content_type.startswith(_FORM_TYPES):
        data = await request.form()
        form = {key: str(value) for key, value in data.items()}
    elif content_type.startswith("application/json"):
        try:
            json_body = await request.json()
        except ValueError:
            json_body = None
        if not isinstance(json_body, dict):
            json_body = None
    return HttpRequest(
        method=request.method,
        path=request.url.path,
        query=dict(request.query_params),
        form=form,
        json=json_body,
        headers=dict(request.headers),
        cookies=dict(request.cookies),
    )


def to_response(response: HttpResponse, secure_cookies: bool = False) -> Response:
    result = Response(content=response.body, status_code=response.status_code, headers=response.headers)
    for name, value in response.cookies.items():
        if value is None:
            result.delete_cookie(name, httponly=True, samesite="lax", secure=secure_cookies)
        else:
            result.set_cookie(name, value, httponly=True, samesite="lax", secure=secure_cookies)
    return result


def create_router(server: AuthorizationServer) -> APIRouter:
    """Mount every registered endpoint at its path and methods."""
    router = APIRouter(tags=["OAuth2"])
    secure_cookies = server.context.settings.issuer.startswith("https://")

    def make_handler(name: str):
        async def handler(request: Request) -> Response:
            http_request = await to_http_request(request)
            http_response = await run_in_threadpool(server.endpoint, name, http_request)
            return to_response(http_response, secure_cookies)

        handler.__name__ = f"oauth_{name}"
        return handler

    for name, endpoint in server.endpoints.items():
        router.add_api_route(endpoint.path, make_handler(name), methods=list(endpoint.methods), name=name)
        logger.debug("Mounted %s endpoint at %s %s", name, ",".join(endpoint.methods), endpoint.path)
    return router
