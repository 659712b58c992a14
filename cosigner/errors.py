"""
Error taxonomy shared by every cosigner operation.

Each error carries an optional ``field`` naming the argument or snapshot
entry that failed, so callers can tell which input to fix before retrying
with their original snapshot.
"""

from typing import Optional


class CosignerError(Exception):
    """Base class for all protocol errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


class DecodingError(CosignerError, ValueError):
    """Malformed or truncated snapshot, witness, key or signature bytes."""


class InvalidArgument(CosignerError, ValueError):
    """Out-of-range index, unknown participant, bad fee config and the like."""


class IncompleteState(CosignerError):
    """An aggregation or finalization step ran before all data was present."""


class ConsistencyError(CosignerError):
    """Data contradicts what was previously committed or asserted."""


class InsufficientFunds(CosignerError):
    """Payable balance does not cover the outputs plus the computed fee."""


class TransportError(CosignerError, ConnectionError):
    """The obfuscation oracle is unreachable, rejected the call, or the
    transport address uses an unsupported scheme."""
