"""Concurrency control for off-ledger swap orchestration.

Provides per-swap locking so the steps of one submission (resolve the send
library, build the account lists, submit) never interleave with a retry of
the same swap, while independent swaps proceed concurrently. Every order
carries a fresh nonce, so a swap's lock is dropped from the registry as soon
as nobody holds or waits for it.
"""

import asyncio
import logging
from typing import Optional

from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)

SwapKey = tuple[bytes, Pubkey]

# Global lock registry: (nonce, dest_trader) -> asyncio.Lock
_swap_locks: dict[SwapKey, asyncio.Lock] = {}
# Holders plus waiters of each registered lock
_lock_users: dict[SwapKey, int] = {}
_registry_lock = asyncio.Lock()


async def get_swap_lock(nonce: bytes, dest_trader: Pubkey) -> asyncio.Lock:
    """Get or create the lock of one swap and register the caller as a user.

    Each call must be paired with ``release_swap_lock`` once the caller is
    done with the lock, whether or not it acquired it.

    Args:
        nonce: 12-byte order nonce
        dest_trader: Account the order pays out to

    Returns:
        asyncio.Lock for the swap
    """
    key = (nonce, dest_trader)
    async with _registry_lock:
        if key not in _swap_locks:
            _swap_locks[key] = asyncio.Lock()
        _lock_users[key] = _lock_users.get(key, 0) + 1
        return _swap_locks[key]


def release_swap_lock(nonce: bytes, dest_trader: Pubkey) -> None:
    """Unregister one user; the lock is dropped when the last one leaves."""
    key = (nonce, dest_trader)
    users = _lock_users.get(key, 0) - 1
    if users > 0:
        _lock_users[key] = users
        return
    _lock_users.pop(key, None)
    _swap_locks.pop(key, None)


def registered_swap_locks() -> int:
    """Number of swaps with a live lock."""
    return len(_swap_locks)


class SwapLock:
    """Context manager for exclusive orchestration of one swap.

    Example:
        async with SwapLock(order.nonce, order.dest_trader, operation="cross_swap"):
            lib = await resolve_send_library(...)
            await submit(...)
    """

    def __init__(
        self,
        nonce: bytes,
        dest_trader: Pubkey,
        timeout: Optional[float] = 30.0,
        operation: str = "swap",
    ):
        self.nonce = nonce
        self.dest_trader = dest_trader
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    @property
    def label(self) -> str:
        return f"{self.nonce.hex()}/{self.dest_trader}"

    async def __aenter__(self) -> "SwapLock":
        self._lock = await get_swap_lock(self.nonce, self.dest_trader)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Lock acquired for swap {self.label}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            release_swap_lock(self.nonce, self.dest_trader)
            logger.warning(
                f"Lock timeout for swap {self.label} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for swap {self.label} within {self.timeout}s"
            )
        except asyncio.CancelledError:
            release_swap_lock(self.nonce, self.dest_trader)
            raise

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            release_swap_lock(self.nonce, self.dest_trader)
            logger.debug(f"Lock released for swap {self.label}: {self.operation}")
        return False


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def clear_swap_locks() -> None:
    """Clear all swap locks (useful for testing)."""
    _swap_locks.clear()
    _lock_users.clear()
