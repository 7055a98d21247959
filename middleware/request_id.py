"""Request ID middleware for distributed tracing."""
import re
import uuid
from fastapi import Request

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


async def request_id_middleware(request: Request, call_next):
    """Reuse a well-formed incoming X-Request-ID, otherwise mint a new one."""
    incoming = request.headers.get("x-request-id", "")
    request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response
