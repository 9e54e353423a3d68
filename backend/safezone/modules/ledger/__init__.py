"""Upload ledger module."""

from safezone.modules.ledger.models import UploadLedgerEntry
from safezone.modules.ledger.service import LedgerRecord, SqlUploadLedger, UploadLedger

__all__ = [
    "UploadLedgerEntry",
    "LedgerRecord",
    "SqlUploadLedger",
    "UploadLedger",
]
