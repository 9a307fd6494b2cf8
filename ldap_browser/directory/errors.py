from __future__ import annotations


class DirectoryError(Exception):
    """Base class for errors raised by directory sessions."""

    kind = "directory_error"


class NotConnected(DirectoryError):
    kind = "not_connected"

    def __init__(self, message: str = "Not connected to a directory server.") -> None:
        super().__init__(message)


class ConnectFailed(DirectoryError):
    """Bind or transport failure while opening a connection."""

    kind = "connect_failed"


class OperationFailed(DirectoryError):
    """The server answered a request with an LDAP error result."""

    kind = "operation_failed"

    def __init__(self, operation: str, result: dict | None = None) -> None:
        res = dict(result or {})
        self.operation = operation
        code = res.get("result")
        self.result_code = int(code) if code is not None else -1
        self.description = str(res.get("description") or "")
        self.message = str(res.get("message") or "")

        text = f"{operation} failed: {self.description or 'unknown error'}"
        if self.message:
            text += f" ({self.message})"
        super().__init__(text)

    @property
    def is_no_such_object(self) -> bool:
        return self.result_code == 32
