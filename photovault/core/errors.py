"""Domain errors raised by the vault operations."""
from __future__ import annotations


class VaultError(Exception): ...
class NotFound(VaultError): ...
class Conflict(VaultError): ...
class NotEmpty(VaultError): ...
class InvalidInput(VaultError): ...
class IOFailure(VaultError): ...


class CrossDeviceFallback(VaultError):
    """Raised by a rename across filesystems; the move helpers catch it and copy instead."""
