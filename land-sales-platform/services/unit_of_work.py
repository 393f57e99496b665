"""
Best-effort multi-step writes with compensation.

The storage layer offers no transaction spanning the sales, units,
installments and payments tables, so each multi-step operation runs its
writes through a CompensatingSequence:

    steps = CompensatingSequence("confirm_advance", sale_id=sale.sale_id)
    steps.run("write sale fields", lambda: ..., undo=lambda: ...)
    steps.run("mark units sold", lambda: ..., undo=lambda: ...)

When a step fails, the undo actions of the steps that already succeeded run
once, in reverse order. If they all succeed the original error is re-raised
unchanged. If any of them fails, InconsistencyError is raised instead; it is
never downgraded to a warning.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from domain.errors import InconsistencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompensatingSequence:
    def __init__(self, operation: str, **context: Any):
        self.operation = operation
        self.context = {key: str(value) for key, value in context.items()}
        self._undo: List[Tuple[str, Callable[[], Any]]] = []
        self.completed_steps: List[str] = []

    def run(self, step: str, action: Callable[[], T], undo: Optional[Callable[[], Any]] = None) -> T:
        """
        Execute one step.

        Args:
            step: Human-readable step name (reported in errors and logs)
            action: The write to perform
            undo: How to reverse the write if a later step fails

        Returns:
            Whatever `action` returns
        """

        try:
            result = action()
        except Exception as exc:
            self._compensate(step, exc)
            raise
        self.completed_steps.append(step)
        if undo is not None:
            self._undo.append((step, undo))
        return result

    def add_undo(self, step: str, undo: Callable[[], Any]) -> None:
        """Register an undo for a step whose reversal depends on its result."""

        self._undo.append((step, undo))

    def _compensate(self, failed_step: str, cause: Exception) -> None:
        if not self._undo:
            return

        logger.warning(
            "Step failed; compensating",
            extra={
                "operation": self.operation,
                "failed_step": failed_step,
                "error": str(cause),
                "undo_steps": [step for step, _ in reversed(self._undo)],
                **self.context,
            },
        )

        failures: List[str] = []
        for step, undo in reversed(self._undo):
            try:
                undo()
            except Exception as undo_exc:
                failures.append(f"undo '{step}': {undo_exc}")
        self._undo.clear()

        if failures:
            logger.error(
                "Compensation failed; manual reconciliation required",
                extra={
                    "operation": self.operation,
                    "failed_step": failed_step,
                    "compensation_failures": failures,
                    **self.context,
                },
            )
            raise InconsistencyError(self.operation, failed_step, failures) from cause


__all__ = ["CompensatingSequence"]
