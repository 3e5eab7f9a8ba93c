import logging
import time
from uuid import uuid4

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.context import (
    ACTOR_ID_HEADER,
    REQUEST_ID_HEADER,
    RequestContext,
    bind_request_context,
    reset_request_context,
)

logger = logging.getLogger("app.access")


def _client_ip(scope: Scope, headers: Headers) -> str:
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = scope.get("client")
    return client[0] if client else "-"


class RequestContextMiddleware:
    """Bind request id, caller ip and acting operator for the request lifetime.

    The request id is echoed back on the response and one access line is
    logged per request with its status and duration.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        ctx = RequestContext(
            request_id=headers.get(REQUEST_ID_HEADER) or uuid4().hex,
            client_ip=_client_ip(scope, headers),
            actor_id=headers.get(ACTOR_ID_HEADER) or "-",
        )
        token = bind_request_context(ctx)
        started = time.perf_counter()
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = ctx.request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            logger.info(
                "%s %s status=%s duration_ms=%.1f",
                scope["method"],
                scope["path"],
                status_code,
                (time.perf_counter() - started) * 1000,
            )
            reset_request_context(token)
