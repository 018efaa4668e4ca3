"""Reconcile status state machine shared by every custom resource.

Every custom resource managed by the operator embeds the same generic
status block::

    status:
      observedGeneration: 3
      conditions:
      - type: ReconcileSucceeded
        status: "True"
      friendlyDescription: Reconcile succeeded

The conditions only ever describe the outcome of the current reconcile.
"""

from __future__ import annotations

__all__ = (
    "INVALID",
    "RECONCILE_FAILED",
    "RECONCILE_SUCCEEDED",
    "RECONCILING",
    "ReconcileResult",
    "Status",
    "reconcile_with_status",
)

import copy
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from secretgenoperator.errors import TerminalReconcileError

RECONCILING = "Reconciling"
RECONCILE_FAILED = "ReconcileFailed"
RECONCILE_SUCCEEDED = "ReconcileSucceeded"
INVALID = "Invalid"
"""Condition type for a spec that is not of valid form."""

_GENERIC_FIELDS = ("observedGeneration", "conditions", "friendlyDescription")


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful (or terminally failed) reconcile.

    A default instance means "done, wait for the next watch event".
    Transient failures are not represented here; they are raised.
    """

    requeue: bool = False
    """Reconcile again as soon as possible."""

    requeue_after: float | None = None
    """Reconcile again after this many seconds."""


class Status:
    """Track the generic status of a resource while it is reconciled.

    Parameters
    ----------
    status : `dict` or `None`
        The current ``status`` of the resource. Only the generic fields
        are read.
    update_func : callable
        Called with the generic status `dict` whenever it changes. This
        typically copies the fields back into the resource body.
    """

    def __init__(
        self,
        status: dict[str, Any] | None,
        update_func: Callable[[dict[str, Any]], None],
    ) -> None:
        status = status or {}
        self.status: dict[str, Any] = {
            "observedGeneration": status.get("observedGeneration", 0),
            "conditions": copy.deepcopy(status.get("conditions") or []),
            "friendlyDescription": status.get("friendlyDescription", ""),
        }
        self.update_func = update_func

    def result(self) -> dict[str, Any]:
        return copy.deepcopy(self.status)

    def is_reconcile_succeeded(self) -> bool:
        return any(
            condition["type"] == RECONCILE_SUCCEEDED
            for condition in self.status["conditions"]
        )

    def set_reconciling(self, meta: dict[str, Any]) -> None:
        """Mark the start of a reconcile of the resource with metadata
        ``meta``.
        """
        self.status["observedGeneration"] = meta.get("generation", 0)
        self.status["conditions"] = [
            {"type": RECONCILING, "status": "True"}
        ]
        self.status["friendlyDescription"] = "Reconciling"
        self.update_func(self.result())

    def set_reconcile_completed(self, error: BaseException | None) -> None:
        """Record the outcome of a reconcile; ``error`` is `None` on
        success.
        """
        if error is not None:
            self.status["conditions"] = [
                {
                    "type": RECONCILE_FAILED,
                    "status": "True",
                    "message": str(error),
                }
            ]
            self.status["friendlyDescription"] = _friendly_error_message(
                f"Reconcile failed: {error}"
            )
        else:
            self.status["conditions"] = [
                {"type": RECONCILE_SUCCEEDED, "status": "True"}
            ]
            self.status["friendlyDescription"] = "Reconcile succeeded"
        self.update_func(self.result())

    def with_reconcile_completed(
        self, reconcile: Callable[[], ReconcileResult]
    ) -> ReconcileResult:
        """Run ``reconcile`` and record its outcome.

        A `~secretgenoperator.errors.TerminalReconcileError` is recorded
        and swallowed so that the resource is not requeued. Any other
        exception is recorded and re-raised.
        """
        try:
            result = reconcile()
        except TerminalReconcileError as err:
            self.set_reconcile_completed(err)
            return ReconcileResult()
        except Exception as err:
            self.set_reconcile_completed(err)
            raise
        self.set_reconcile_completed(None)
        return result


def reconcile_with_status(
    *,
    body: dict[str, Any],
    reconcile: Callable[[], ReconcileResult],
    persist: Callable[[dict[str, Any]], None],
) -> ReconcileResult:
    """Reconcile a custom resource, persisting its status on every exit
    path.

    Parameters
    ----------
    body : `dict`
        The custom resource. Its ``status`` is updated in place.
    reconcile : callable
        The reconcile body.
    persist : callable
        Called with ``body`` once the reconcile has finished, whether it
        returned or raised, if the status changed.

    Returns
    -------
    result : `ReconcileResult`
        The outcome of the reconcile.
    """
    original_status = copy.deepcopy(body.get("status") or {})

    def update(generic_status: dict[str, Any]) -> None:
        body.setdefault("status", {}).update(generic_status)

    status = Status(body.get("status"), update)
    status.set_reconciling(body["metadata"])
    try:
        return status.with_reconcile_completed(reconcile)
    finally:
        if body["status"] != original_status:
            persist(body)


def _friendly_error_message(message: str) -> str:
    # Only the first line fits in kubectl output.
    pieces = message.split("\n")
    if len(pieces[0]) > 80:
        pieces[0] = pieces[0][:80] + "..."
    elif len(pieces) > 1:
        pieces[0] += "..."
    return pieces[0]
