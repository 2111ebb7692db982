"""Barrim registry: entity lifecycle and referral ledger for marketplace records."""

__version__ = "0.1.0"
