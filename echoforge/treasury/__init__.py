from __future__ import annotations
"""
echoforge.treasury
==================

Treasury-facing package: the asset ledger (holdings, marks, journal) with its
derived backing-ratio and runway views, and the adaptive transfer tax that
feeds it.

Modules are pure over explicit inputs; the engine owns persistence and
serialization of the compound ledger.
"""

from .ledger import (BACKING_RATIO_INFINITE, INFINITE, RUNWAY_INFINITE,
                     JournalEntry, TreasuryLedger)
from .tax import TransferQuote, quote_transfer, tax_rate_bps

__all__ = [
    "TreasuryLedger",
    "JournalEntry",
    "INFINITE",
    "RUNWAY_INFINITE",
    "BACKING_RATIO_INFINITE",
    "TransferQuote",
    "quote_transfer",
    "tax_rate_bps",
]
