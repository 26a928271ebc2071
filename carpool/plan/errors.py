from __future__ import annotations

from typing import Optional


class CarpoolError(Exception):
    """Base class for engine errors surfaced to callers."""


class UnresolvableAddressError(CarpoolError):
    def __init__(self, address: str, reason: Optional[str] = None):
        self.address = address
        self.reason = reason
        msg = f"Address {address!r} could not be geocoded"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidPlusCodeError(CarpoolError, ValueError):
    pass


class MissingLocalityContextError(InvalidPlusCodeError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Short location code {code!r} requires locality context")


class RoutingBackendError(CarpoolError):
    """One routing backend failed; the provider falls through to the next one."""

    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend}: {reason}")


class RoutingExhaustedError(CarpoolError):
    pass


class SessionError(CarpoolError):
    pass


class InfeasibleCapacityWarning(UserWarning):
    """Allocation completed, but at least one driver carries more than their seats."""
