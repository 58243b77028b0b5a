"""Utility modules for rfqbridge."""

from rfqbridge.utils.locks import (
    LockTimeoutError,
    SwapLock,
    clear_swap_locks,
    get_swap_lock,
    registered_swap_locks,
    release_swap_lock,
)

__all__ = [
    "SwapLock",
    "LockTimeoutError",
    "get_swap_lock",
    "release_swap_lock",
    "registered_swap_locks",
    "clear_swap_locks",
]
