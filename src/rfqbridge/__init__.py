"""RFQ order authentication and cross-ledger settlement."""

__version__ = "0.1.0"
