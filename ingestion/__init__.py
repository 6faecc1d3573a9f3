"""
Data Ingestion Module

Validates and normalizes quote ingestion requests
(ISIN + exchange + dated quotes) before they reach the ledger.
"""

__version__ = "0.1.0"
