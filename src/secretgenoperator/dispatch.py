"""Serialized dispatch of reconciles and translation of their outcomes
for kopf.
"""

from __future__ import annotations

__all__ = ("Dispatcher", "Reconciler")

import threading
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import kopf
import structlog

from secretgenoperator.errors import (
    InternalInconsistencyError,
    TerminalReconcileError,
)
from secretgenoperator.status import ReconcileResult


class Reconciler(Protocol):
    """Anything that reconciles a resource by namespace and name."""

    def reconcile(
        self, namespace: str, name: str, logger: Any | None = None
    ) -> ReconcileResult:
        ...


class Dispatcher:
    """Route reconciles to the reconciler of each kind.

    kopf runs handlers on a thread pool and a resource may be reconciled
    both from its own handlers and from the handlers of resources it
    depends on. The dispatcher holds one lock per kind, namespace and
    name so that at most one reconcile of a given resource runs at a time,
    while different resources are reconciled concurrently.

    Resources reconciled outside of their own handlers cannot rely on kopf
    to retry them, so the dispatcher keeps a retry queue of its own.

    Parameters
    ----------
    retry_delay : `float`
        Delay, in seconds, before a reconcile that failed with a transient
        error is retried.
    clock : callable, optional
        Returns the current time in seconds. Defaults to
        `time.monotonic`.
    """

    def __init__(
        self,
        *,
        retry_delay: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retry_delay = retry_delay
        self._clock = clock
        self._retries: dict[tuple[str, str, str], float] = {}
        self._retries_lock = threading.Lock()
        self._reconcilers: dict[str, Reconciler] = {}
        self._locks: dict[tuple[str, str, str], threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def register(self, kind: str, reconciler: Reconciler) -> None:
        self._reconcilers[kind] = reconciler

    def reconciler(self, kind: str) -> Reconciler:
        return self._reconcilers[kind]

    def reconcile(
        self,
        kind: str,
        namespace: str,
        name: str,
        logger: Any | None = None,
    ) -> ReconcileResult:
        """Reconcile a resource, waiting for any reconcile of the same
        resource in progress.

        Exceptions of the reconciler are raised as is.
        """
        reconciler = self._reconcilers[kind]
        with self._lock_for(kind, namespace, name):
            return reconciler.reconcile(namespace, name, logger=logger)

    def handle(
        self,
        kind: str,
        namespace: str,
        name: str,
        logger: Any | None = None,
    ) -> None:
        """Reconcile a resource from a kopf handler.

        A result asking for another reconcile is not a failure: the key is
        added to the retry queue and the handler returns normally.

        Raises
        ------
        kopf.TemporaryError
            Raised to make kopf retry the handler after ``retry_delay``
            because the reconciler failed with a transient error.
        kopf.PermanentError
            Raised if an internal invariant is broken. kopf does not retry
            these.
        """
        if logger is None:
            logger = structlog.get_logger(__name__)

        try:
            result = self.reconcile(kind, namespace, name, logger=logger)
        except InternalInconsistencyError as e:
            logger.error(f"Reconciling {kind} {namespace}/{name}: {e}")
            raise kopf.PermanentError(str(e)) from e
        except Exception as e:
            raise kopf.TemporaryError(
                f"Reconciling {kind} {namespace}/{name}: {e}",
                delay=self.retry_delay,
            ) from e

        self._requeue(kind, namespace, name, result, logger)

    def enqueue(
        self,
        kind: str,
        keys: Iterable[tuple[str, str]],
        logger: Any | None = None,
    ) -> None:
        """Reconcile resources that depend on a changed resource.

        Failures are logged rather than raised since they belong to the
        dependent resources, not to the resource whose handler is running.
        Transient failures and results asking for another reconcile put
        the key on the retry queue, drained by `run_retries`.

        Parameters
        ----------
        kind : `str`
            Kind of the dependent resources.
        keys : iterable of `tuple`
            ``(namespace, name)`` of each dependent resource.
        logger : `Any`, optional
            Logger to use for logging messages.
        """
        if logger is None:
            logger = structlog.get_logger(__name__)

        for namespace, name in keys:
            try:
                result = self.reconcile(kind, namespace, name, logger=logger)
            except (InternalInconsistencyError, TerminalReconcileError):
                logger.exception(
                    f"Failed to reconcile {kind} {namespace}/{name}"
                )
            except Exception:
                logger.exception(
                    f"Failed to reconcile {kind} {namespace}/{name}, "
                    f"retrying in {self.retry_delay}s"
                )
                self.schedule_retry(
                    kind, namespace, name, delay=self.retry_delay
                )
            else:
                self._requeue(kind, namespace, name, result, logger)

    def schedule_retry(
        self, kind: str, namespace: str, name: str, *, delay: float
    ) -> None:
        """Reconcile a resource again after ``delay`` seconds.

        A key already on the queue keeps the earlier of its two due times.
        """
        key = (kind, namespace, name)
        due = self._clock() + delay
        with self._retries_lock:
            self._retries[key] = min(due, self._retries.get(key, due))

    def pending_retries(self) -> dict[tuple[str, str, str], float]:
        """Get the queued retries and the time each one is due at."""
        with self._retries_lock:
            return dict(self._retries)

    def retry_due(self, logger: Any | None = None) -> int:
        """Reconcile the queued resources whose retry is due.

        Returns
        -------
        count : `int`
            The number of resources reconciled.
        """
        now = self._clock()
        with self._retries_lock:
            due = [key for key, when in self._retries.items() if when <= now]
            for key in due:
                del self._retries[key]

        for kind, namespace, name in due:
            self.enqueue(kind, [(namespace, name)], logger=logger)
        return len(due)

    def run_retries(
        self,
        stopped: threading.Event,
        *,
        interval: float = 1.0,
        logger: Any | None = None,
    ) -> None:
        """Drain the retry queue every ``interval`` seconds until
        ``stopped`` is set.
        """
        if logger is None:
            logger = structlog.get_logger(__name__)

        while not stopped.wait(interval):
            self.retry_due(logger=logger)

    def _requeue(
        self,
        kind: str,
        namespace: str,
        name: str,
        result: ReconcileResult,
        logger: Any,
    ) -> None:
        if result.requeue_after is not None:
            delay = result.requeue_after
        elif result.requeue:
            delay = 0.0
        else:
            return
        logger.info(
            f"Reconciling {kind} {namespace}/{name} again in {delay}s"
        )
        self.schedule_retry(kind, namespace, name, delay=delay)

    def _lock_for(
        self, kind: str, namespace: str, name: str
    ) -> threading.Lock:
        key = (kind, namespace, name)
        with self._locks_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]
