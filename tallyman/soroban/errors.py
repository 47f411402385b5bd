"""Soroban RPC errors."""

from __future__ import annotations


class SorobanRpcError(RuntimeError):
    """Raised when the RPC endpoint answers with an error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        rpc_code: int | None = None,
    ) -> None:
        """Initialise with a message plus optional HTTP and JSON-RPC codes."""
        self.status_code = status_code
        self.rpc_code = rpc_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int) -> SorobanRpcError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"Soroban RPC HTTP {status_code}", status_code=status_code)

    @classmethod
    def rpc_error(cls, code: int | None, message: str) -> SorobanRpcError:
        """Return an error for a JSON-RPC ``error`` member."""
        return cls(f"Soroban RPC error {code}: {message}", rpc_code=code)


class SorobanResponseShapeError(RuntimeError):
    """Raised when an RPC response does not match the expected shape."""

    @classmethod
    def invalid(cls, detail: str) -> SorobanResponseShapeError:
        """Return an error describing the mismatch."""
        return cls(f"Soroban RPC response has unexpected shape: {detail}")
