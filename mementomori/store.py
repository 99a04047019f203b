from dataclasses import dataclass
from typing import Dict, Optional, Tuple

RecordKey = Tuple[int, str, str]


@dataclass
class WillRecord:
    """What is kept per vault: the fingerprint and the pending-execution clock"""
    commitment: str
    request_time: int = 0
    armed_by: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.request_time != 0


class WillRecordStore:
    """Vault -> commitment registry keyed by (chain selector, vault, controller).

    The controller is the vault allowed to write the record: the vault
    itself on its own ledger, the origin vault anywhere else.

    The full will payload is never stored.
    """

    def __init__(self):
        self._records: Dict[RecordKey, WillRecord] = {}

    @staticmethod
    def key(chain_selector: int, vault: str, controller: Optional[str] = None) -> RecordKey:
        return int(chain_selector), vault.lower(), (controller or vault).lower()

    def get(self, key: RecordKey) -> Optional[WillRecord]:
        return self._records.get(key)

    def commitment(self, key: RecordKey) -> Optional[str]:
        record = self._records.get(key)
        return record.commitment if record else None

    def exists(self, key: RecordKey) -> bool:
        return key in self._records

    def commit(self, key: RecordKey, commitment: str) -> bool:
        """Store a new fingerprint and reset timing; True if one existed"""
        existed = key in self._records
        self._records[key] = WillRecord(commitment)
        return existed

    def arm(self, key: RecordKey, now: int, armed_by: str):
        record = self._records[key]
        record.request_time = now
        record.armed_by = armed_by.lower()

    def clear(self, key: RecordKey):
        self._records.pop(key, None)

    def __len__(self) -> int:
        return len(self._records)
