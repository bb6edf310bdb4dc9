"""
Arisan Ledger

Bookkeeping engine for rotating savings groups (arisan): declining and fixed
contribution schedules, turn-order draws, round lifecycle and payment tracking,
with Decimal money math and a hash-chained audit trail.
"""

__version__ = "1.0.0"
