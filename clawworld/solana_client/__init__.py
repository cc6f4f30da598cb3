"""Solana ledger access"""
from .client import TokenLedgerClient, is_valid_address

__all__ = ["TokenLedgerClient", "is_valid_address"]
