"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the wallet ledger models used by ``wallet_ledger``.
"""

from .ledger import Base, WlCategory, WlTransaction, WlUser, WlWallet

__all__ = [
    "Base",
    "WlCategory",
    "WlTransaction",
    "WlUser",
    "WlWallet",
]
