from __future__ import annotations


class CvtError(Exception):
    """Base class for every error raised by cvtrace itself."""


class InvalidArgument(CvtError, ValueError):
    pass


class ConfigError(CvtError):
    """Missing or invalid tracing configuration; raised before any network call."""


class MethodResolutionError(ConfigError):
    """The read method signature cannot be turned into a callable descriptor."""


class RPCError(CvtError):
    """The node answered a JSON-RPC request with an error object."""

    def __init__(self, method: str, code: int | None, message: str | None) -> None:
        super().__init__(f"{method} RPC error code={code} message={message}")
        self.method = method
        self.code = code
        self.message = message


class TransientReadError(CvtError):
    """A single state read failed (possibly after retries)."""

    def __init__(self, message: str, block_number: int | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.block_number = block_number
        self.attempts = attempts


class SubscriptionError(CvtError):
    """The live log feed failed; the watcher reconnects after a delay."""


class CallbackError(CvtError):
    """A caller-supplied callback raised."""
