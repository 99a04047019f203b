"""
Host ledger errors raised by the simulated chain, assets, vaults and bridge
"""


class ChainError(Exception):
    """A call on the host ledger reverted"""

    kind = "ChainError"

    def __init__(self, reason: str = ""):
        self.reason = reason or self.kind
        super().__init__(self.reason)

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"

    def to_dict(self) -> dict:
        return {'error': self.kind, 'message': self.reason, 'details': None}


class InsufficientBalance(ChainError):
    kind = "InsufficientBalance"


class UnknownContract(ChainError):
    kind = "UnknownContract"


class CallRejected(ChainError):
    """Caller is not allowed to perform the call (not owner, module disabled...)"""
    kind = "CallRejected"


class SignatureError(ChainError):
    kind = "SignatureError"


class BridgeError(ChainError):
    kind = "BridgeError"
