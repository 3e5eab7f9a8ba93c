import contextvars
from dataclasses import dataclass

REQUEST_ID_HEADER = "x-request-id"
ACTOR_ID_HEADER = "x-user-id"


@dataclass(frozen=True)
class RequestContext:
    """Per-request values stamped onto every log line and audit event."""

    request_id: str = "-"
    client_ip: str = "-"
    actor_id: str = "-"


_EMPTY = RequestContext()
_current: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    "loan_request_context", default=_EMPTY
)


def bind_request_context(ctx: RequestContext) -> contextvars.Token:
    return _current.set(ctx)


def reset_request_context(token: contextvars.Token) -> None:
    _current.reset(token)


def current_context() -> RequestContext:
    return _current.get()


def get_request_id() -> str:
    return _current.get().request_id


def get_actor_id() -> str:
    return _current.get().actor_id
