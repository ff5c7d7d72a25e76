import logging
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("articleflow.core.middleware")

REQUEST_ID_HEADER = "x-request-id"
# Headers that advertise server internals.
STRIPPED_RESPONSE_HEADERS = ("server", "x-powered-by")
_MAX_INBOUND_ID_LENGTH = 128


def _resolve_request_id(scope: Scope) -> str:
  """Reuse a caller-supplied request id when it is sane, otherwise mint one."""
  inbound = Headers(scope=scope).get(REQUEST_ID_HEADER, "").strip()
  if inbound and len(inbound) <= _MAX_INBOUND_ID_LENGTH and inbound.isprintable():
    return inbound
  return uuid.uuid4().hex


class RequestLoggingMiddleware:
  """Tag each HTTP request with an id and log one line when it starts and one when it ends."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = _resolve_request_id(scope)
    # Exception handlers read this back through request.state.
    scope.setdefault("state", {})["request_id"] = request_id

    owner_id = Headers(scope=scope).get("x-owner-id", "-")
    method = scope.get("method", "?")
    path = scope.get("path", "")
    started = time.perf_counter()
    logger.info("Request start request_id=%s owner=%s %s %s", request_id, owner_id, method, path)

    status_code = 0

    async def send_with_request_id(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        MutableHeaders(scope=message).setdefault(REQUEST_ID_HEADER, request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.info("Request end request_id=%s status=%d %s %s %.1fms", request_id, status_code, method, path, elapsed_ms)


class SecurityHeadersMiddleware:
  """Remove response headers that advertise server internals."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_without_server_headers(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in STRIPPED_RESPONSE_HEADERS:
          if name in headers:
            del headers[name]
      await send(message)

    await self.app(scope, receive, send_without_server_headers)
