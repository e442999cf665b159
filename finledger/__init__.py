"""
finledger - Ledger Consistency Engine

A personal-finance ledger core: accounts, categorized transactions,
budget envelopes, recurring planned transactions and reconciliation.

DESIGN PRINCIPLES:
1. Balances are derived, never typed in
2. Paired records live and die together
3. Income always lands in an envelope
4. Every mutation leaves a consistent, persisted snapshot
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "finledger Team"
