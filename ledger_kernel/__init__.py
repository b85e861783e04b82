"""
Ledger Kernel

Double-entry journal core for the transport operator's finance backend:
- Balanced journal entries with an explicit DRAFT -> POSTED lifecycle
- Corrections only through linked adjustment or reversal entries
- Chart of accounts lookup
- Post-commit audit records
"""

__version__ = "0.1.0"
