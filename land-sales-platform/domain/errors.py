"""
Domain: error taxonomy for the sales engine.

Every failure the engine reports to its callers is one of these types. None of
them is caught and ignored inside the engine.

- ValidationError: malformed or out-of-range input, rejected before any write.
- NotFoundError: a referenced sale, unit or client does not exist.
- StateError: the operation is illegal for the sale's current lifecycle state.
- AvailabilityConflictError: a unit was not in the expected status at write time.
- InconsistencyError: a multi-step write failed and undoing it failed too.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence
from uuid import UUID


class SalesEngineError(Exception):
    """Base class for all errors raised by the sales engine."""


class ValidationError(SalesEngineError):
    """Raised when an input is malformed or out of range."""


class NotFoundError(ValidationError):
    """Raised when a referenced record does not exist."""


class StateError(SalesEngineError):
    """Raised when an operation is illegal for the sale's lifecycle state."""


class AvailabilityConflictError(SalesEngineError):
    """Raised when targeted units are no longer in the expected status."""

    def __init__(self, unavailable_unit_ids: Iterable[UUID], message: Optional[str] = None):
        self.unavailable_unit_ids: List[UUID] = list(unavailable_unit_ids)
        super().__init__(
            message
            or "Units no longer available: "
            + ", ".join(str(u) for u in self.unavailable_unit_ids)
        )


class InconsistencyError(SalesEngineError):
    """
    Raised when a multi-step write failed partway and compensation failed too.

    The stored Sale/Unit/Installment/Payment data needs manual reconciliation.
    `failed_step` names the step that failed originally; `compensation_failures`
    lists every undo that could not be applied.
    """

    def __init__(
        self,
        operation: str,
        failed_step: str,
        compensation_failures: Sequence[str],
    ):
        self.operation = operation
        self.failed_step = failed_step
        self.compensation_failures: List[str] = list(compensation_failures)
        super().__init__(
            f"{operation}: step '{failed_step}' failed and compensation did not complete "
            f"({'; '.join(self.compensation_failures)})"
        )
