"""
Request/run context carried through contextvars.

Each HTTP request or CLI invocation gets an id, plus the name of the
scheduling operation it runs, so every log line can be tied back to it.
"""

import contextvars
import uuid

_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
_operation_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("operation", default=None)


def get_request_id() -> str | None:
    return _request_id_var.get()


def get_operation() -> str | None:
    return _operation_var.get()


def generate_request_id(prefix: str = "req") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class RequestContext:
    """
    Context manager scoping a request id (and optional operation name).

    Usage:
        with RequestContext(operation="simulate") as ctx:
            logger.info("Cascade started")  # carries ctx.request_id

        with RequestContext(request_id="req-abc123"):
            ...
    """

    def __init__(self, request_id: str | None = None, operation: str | None = None):
        self.request_id = request_id or generate_request_id()
        self.operation = operation
        self._tokens: list[tuple[contextvars.ContextVar, contextvars.Token]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens.append((_request_id_var, _request_id_var.set(self.request_id)))
        if self.operation is not None:
            self._tokens.append((_operation_var, _operation_var.set(self.operation)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
