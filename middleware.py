from starlette.datastructures import Headers
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from constants import ALLOWED_HEADERS, ALLOWED_METHODS
from errors import GatewayError, OriginDenied, PayloadTooLarge, error_response
from logging_config import get_logger
from origin_policy import AllowList, decide

logger = get_logger(__name__)


class GatewayMiddleware:
    """Front door for every HTTP request: origin check, pre-flight answer, then body size limit.

    Must be the outermost middleware so that denied requests (pre-flight
    included) never reach CORS handling, routing or handler code. Pre-flight
    requests from allowed origins are answered here, so the allow list is the
    only thing that can refuse one; CORSMiddleware only adds headers to the
    actual responses. The body is read up front and replayed to the app, so an
    oversized request is refused before anything downstream runs. WebSocket
    handshakes are checked by the realtime gateway with the same decision
    function.
    """

    def __init__(self, app: ASGIApp, allow_list: AllowList, max_body_bytes: int):
        self.app = app
        self.allow_list = allow_list
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        decision = decide(headers.get("origin"), self.allow_list)
        if not decision.allowed:
            logger.warning(f"Blocked {scope['method']} {scope['path']} from origin {decision.origin}")
            await self._reject(OriginDenied(decision.origin, self.allow_list), scope, receive, send)
            return

        if decision.origin and scope["method"] == "OPTIONS" and "access-control-request-method" in headers:
            await self._preflight(decision.origin, scope, receive, send)
            return

        content_length = headers.get("content-length")
        if content_length is not None and content_length.isdigit() and int(content_length) > self.max_body_bytes:
            logger.warning(f"Rejected {scope['method']} {scope['path']}: declared body of {content_length} bytes")
            await self._reject(PayloadTooLarge(self.max_body_bytes), scope, receive, send)
            return

        body = bytearray()
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body.extend(message.get("body", b""))
            more_body = message.get("more_body", False)
            if len(body) > self.max_body_bytes:
                logger.warning(f"Rejected {scope['method']} {scope['path']}: streamed body over {self.max_body_bytes} bytes")
                body.clear()
                await self._reject(PayloadTooLarge(self.max_body_bytes), scope, receive, send)
                return

        await self.app(scope, self._replay(bytes(body), receive), send)

    @staticmethod
    def _replay(body: bytes, receive: Receive) -> Receive:
        sent = False

        async def replay() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay

    @staticmethod
    async def _preflight(origin: str, scope: Scope, receive: Receive, send: Send) -> None:
        # the origin already passed decide(); which methods and headers to use is left to the browser
        response = Response(
            status_code=204,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
                "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
                "Vary": "Origin",
            },
        )
        await response(scope, receive, send)

    @staticmethod
    async def _reject(exc: GatewayError, scope: Scope, receive: Receive, send: Send) -> None:
        await error_response(exc)(scope, receive, send)
