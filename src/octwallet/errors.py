from typing import Any


class ValidationError(ValueError):
    """Raised for input rejected locally, before anything touches the network."""


class RpcError(Exception):
    """Non-success response from the ledger RPC (or the relay in front of it).

    Keeps the upstream status code and body as received.
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def diagnostic(self) -> str:
        if isinstance(self.body, dict) and self.body.get("error"):
            return str(self.body["error"])
        if self.body:
            return str(self.body)
        return str(self)


class RpcNotFound(RpcError):
    pass


class RpcTimeout(RpcError):
    pass


class RpcTransportError(RpcError):
    pass
