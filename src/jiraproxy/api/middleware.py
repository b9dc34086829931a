"""aiohttp middlewares for the proxy: request logging, CORS and last-resort errors."""

from typing import Awaitable, Callable, Iterable

from aiohttp import hdrs, web

from ..logging import get_logger

logger = get_logger("http")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ALLOWED_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"
ALLOWED_HEADERS = "Content-Type,Accept,Authorization,x-jira-server,x-jira-user,x-jira-token,x-jira-consumer"


@web.middleware
async def request_logger(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Log one line per inbound request."""
    logger.info(f"{request.method} {request.path}")
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn anything a handler failed to catch into a JSON 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return web.json_response(
            {"error": "Internal server error", "message": str(e)},
            status=500,
        )


def cors_middleware(allowed_origins: Iterable[str]):
    """Build a middleware that applies the CORS allow-list.

    Args:
        allowed_origins: Origins allowed to call the proxy with credentials.

    Returns:
        An aiohttp middleware.
    """
    origins = frozenset(allowed_origins)

    def apply_headers(request: web.Request, response: web.StreamResponse) -> None:
        origin = request.headers.get(hdrs.ORIGIN)
        if origin and origin in origins:
            response.headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = origin
            response.headers[hdrs.ACCESS_CONTROL_ALLOW_CREDENTIALS] = "true"
            response.headers[hdrs.VARY] = hdrs.ORIGIN

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        is_preflight = (
            request.method == hdrs.METH_OPTIONS
            and hdrs.ACCESS_CONTROL_REQUEST_METHOD in request.headers
        )
        if is_preflight:
            response = web.Response(status=204)
            if request.headers.get(hdrs.ORIGIN) in origins:
                response.headers[hdrs.ACCESS_CONTROL_ALLOW_METHODS] = ALLOWED_METHODS
                response.headers[hdrs.ACCESS_CONTROL_ALLOW_HEADERS] = ALLOWED_HEADERS
            apply_headers(request, response)
            return response

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            apply_headers(request, exc)
            raise
        apply_headers(request, response)
        return response

    return middleware
