"""RFQ order types, encoding and hashing."""

from rfqbridge.orders.codec import (
    CrossOrder,
    Order,
    generate_nonce,
    pad_symbol,
    partial_fill_amount,
    unpad_symbol,
)

__all__ = [
    "Order",
    "CrossOrder",
    "generate_nonce",
    "pad_symbol",
    "partial_fill_amount",
    "unpad_symbol",
]
