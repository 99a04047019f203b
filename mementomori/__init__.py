"""
MementoMori - dead man's switch asset release for multisig vaults
"""

from .will import Will, NativeAllocation, TokenAllocation, NFTAllocation, MultiTokenAllocation
from .rules import WillRules, validate_will
from .lifecycle import MementoMori, Action, InstanceConfig, WillStatus
from .errors import MementoMoriError

__version__ = "0.1.0"
__all__ = [
    "Will",
    "NativeAllocation",
    "TokenAllocation",
    "NFTAllocation",
    "MultiTokenAllocation",
    "WillRules",
    "validate_will",
    "MementoMori",
    "Action",
    "InstanceConfig",
    "WillStatus",
    "MementoMoriError",
]
