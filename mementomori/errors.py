"""
Protocol error taxonomy for the will lifecycle
"""

from typing import Any, Optional


class MementoMoriError(Exception):
    """Base error; `kind` is stable so callers can branch on the cause"""

    kind = "MementoMoriError"

    def __init__(self, reason: str = "", details: Optional[Any] = None):
        self.reason = reason or self.kind
        self.details = details
        super().__init__(self.reason)

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.kind}: {self.reason}"
        return f"{self.kind}: {self.reason} ({self.details})"

    def to_dict(self) -> dict:
        return {'error': self.kind, 'message': self.reason, 'details': self.details}


class ValueLessThanFee(MementoMoriError):
    kind = "ValueLessThanFee"


class InvalidNative(MementoMoriError):
    kind = "InvalidNative"


class InvalidTokens(MementoMoriError):
    kind = "InvalidTokens"


class InvalidNfts(MementoMoriError):
    kind = "InvalidNfts"


class InvalidErc1155(MementoMoriError):
    kind = "InvalidErc1155"


class InvalidExecutors(MementoMoriError):
    kind = "InvalidExecutors"


class InvalidCooldown(MementoMoriError):
    kind = "InvalidCooldown"


class InvalidAction(MementoMoriError):
    kind = "InvalidAction"


class InvalidFee(MementoMoriError):
    kind = "InvalidFee"


class NoExistingWill(MementoMoriError):
    kind = "NoExistingWill"


class ExecutionHashMismatch(MementoMoriError):
    kind = "ExecutionHashMismatch"


class CooldownNotElapsed(MementoMoriError):
    kind = "CooldownNotElapsed"


class Unauthorized(MementoMoriError):
    kind = "Unauthorized"


class WillInactive(MementoMoriError):
    kind = "WillInactive"


class TransferFailed(MementoMoriError):
    kind = "TransferFailed"


class RelayFailed(MementoMoriError):
    kind = "RelayFailed"


ERROR_KINDS = {
    cls.kind: cls
    for cls in (
        ValueLessThanFee, InvalidNative, InvalidTokens, InvalidNfts,
        InvalidErc1155, InvalidExecutors, InvalidCooldown, InvalidAction, InvalidFee,
        NoExistingWill, ExecutionHashMismatch, CooldownNotElapsed,
        Unauthorized, WillInactive, TransferFailed, RelayFailed,
    )
}
