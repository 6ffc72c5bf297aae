# =============================================================================
# Janus Python Client -- Transaction Registry
# =============================================================================
#
# Correlates replies with the request that triggered them.  Each pending
# transaction owns one future and one single-shot timer; whichever of
# reply / timeout / teardown happens first settles it, later ones are no-ops.
# =============================================================================

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import time

from dataclasses import dataclass, field
from typing import Any, Callable

from ._logging import logger as _default_logger
from .constants import REPLY_ERROR, TRANSACTION_PREFIX_BYTES
from .errors import JanusProtocolError, JanusTimeoutError, JanusUsageError


@dataclass
class Transaction:
    """One outstanding request awaiting its reply."""

    id: str
    future: asyncio.Future[dict[str, Any]]
    timeout: float
    verb: str | None = None
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class TransactionRegistry:
    """In-flight requests keyed by transaction id.

    Ids are ``<random prefix>-<counter>``: the counter makes them unique
    within a registry, the prefix keeps them distinct across sessions
    sharing a gateway.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._pending: dict[str, Transaction] = {}
        self._prefix = secrets.token_hex(TRANSACTION_PREFIX_BYTES)
        self._counter = itertools.count(1)
        self._logger = logger or _default_logger

        self.resolved = 0
        self.timed_out = 0

    # -- Queries ----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._pending

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def get(self, transaction_id: str) -> Transaction | None:
        return self._pending.get(transaction_id)

    # -- Lifecycle ----------------------------------------------------------------

    def next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"

    def register(
        self,
        timeout: float,
        *,
        transaction_id: str | None = None,
        verb: str | None = None,
    ) -> tuple[str, asyncio.Future[dict[str, Any]]]:
        """Open a transaction and start its deadline.

        Args:
            timeout: Seconds before the future is rejected with
                :class:`~janus_client.errors.JanusTimeoutError`.
            transaction_id: Caller-supplied id.  Generated when omitted.
            verb: Request verb, kept for diagnostics.

        Returns:
            ``(transaction_id, future)``.

        Raises:
            JanusUsageError: If *transaction_id* is already pending.
        """
        if timeout <= 0:
            raise JanusUsageError(
                f"Transaction timeout must be positive, got {timeout}"
            )

        tid = transaction_id if transaction_id is not None else self.next_id()
        if tid in self._pending:
            raise JanusUsageError(f"Transaction {tid} is already pending")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        txn = Transaction(id=tid, future=future, timeout=timeout, verb=verb)
        txn.timer = loop.call_later(timeout, self._expire, tid)
        self._pending[tid] = txn
        future.add_done_callback(self._discard_cancelled(tid))

        self._logger.debug("Transaction %s opened (%s, %.1fs)", tid, verb, timeout)
        return tid, future

    def resolve(self, transaction_id: str, payload: dict[str, Any]) -> bool:
        """Settle a transaction with its reply.

        An ``error`` reply rejects the future with
        :class:`~janus_client.errors.JanusProtocolError`.  Unknown ids
        (never registered, already settled, timed out) are ignored.

        Returns:
            True if a pending transaction was settled.
        """
        txn = self._pending.pop(transaction_id, None)
        if txn is None:
            return False
        txn.cancel_timer()
        self.resolved += 1

        if payload.get("janus") == REPLY_ERROR:
            self._logger.debug("Transaction %s rejected by gateway", transaction_id)
            _settle(txn.future, exc=JanusProtocolError(payload))
        else:
            self._logger.debug(
                "Transaction %s resolved after %.3fs", transaction_id, txn.age
            )
            _settle(txn.future, result=payload)
        return True

    def reject(self, transaction_id: str, exc: BaseException) -> bool:
        """Fail one transaction with *exc* (e.g. the write never happened)."""
        txn = self._pending.pop(transaction_id, None)
        if txn is None:
            return False
        txn.cancel_timer()
        _settle(txn.future, exc=exc)
        return True

    def reject_all(self, exc_factory: Callable[[Transaction], BaseException]) -> int:
        """Fail every pending transaction in one pass and empty the registry.

        Returns:
            Number of transactions rejected.
        """
        pending, self._pending = self._pending, {}
        for txn in pending.values():
            txn.cancel_timer()
            _settle(txn.future, exc=exc_factory(txn))
        if pending:
            self._logger.debug("Rejected %d pending transactions", len(pending))
        return len(pending)

    # -- Internal ---------------------------------------------------------------

    def _expire(self, transaction_id: str) -> None:
        txn = self._pending.pop(transaction_id, None)
        if txn is None:
            return
        txn.timer = None
        self.timed_out += 1
        self._logger.warning(
            "Transaction %s (%s) timed out after %.1fs",
            transaction_id,
            txn.verb,
            txn.timeout,
        )
        _settle(txn.future, exc=JanusTimeoutError(transaction_id, txn.timeout))

    def _discard_cancelled(
        self, transaction_id: str
    ) -> Callable[[asyncio.Future[Any]], None]:
        def callback(future: asyncio.Future[Any]) -> None:
            if not future.cancelled():
                return
            txn = self._pending.get(transaction_id)
            if txn is not None and txn.future is future:
                del self._pending[transaction_id]
                txn.cancel_timer()

        return callback


def _settle(
    future: asyncio.Future[Any],
    *,
    result: Any = None,
    exc: BaseException | None = None,
) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(result)
