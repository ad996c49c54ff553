import contextlib
from typing import Iterator


class ScalerError(Exception):
    pass


class AuthRequired(ScalerError):
    """A gated call had no session to attach. Raised before anything is sent."""


class NotFound(ScalerError):
    pass


class VerificationFailed(ScalerError):
    pass


class GatewayError(ScalerError):
    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class NetworkError(GatewayError):
    pass


class ServerError(GatewayError):
    pass


class Unauthorized(GatewayError):
    pass


class ValidationError(GatewayError):
    pass


class LastError:
    """The message of the most recent failed action, until one succeeds."""

    def __init__(self) -> None:
        self.message: str | None = None

    def __bool__(self) -> bool:
        return self.message is not None

    @contextlib.contextmanager
    def track(self) -> Iterator[None]:
        try:
            yield
        except Exception as e:
            self.message = str(e) or type(e).__name__
            raise
        else:
            self.message = None

    def clear(self) -> None:
        self.message = None
