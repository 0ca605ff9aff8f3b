"""
Local status cache for UI callers.

Status changes are applied to the cached lists before the store confirms
them. Once the authoritative write finishes the cache is reconciled: reloaded
from the store on success, rolled back to the pre-change snapshot on failure.
"""
from typing import Dict, List, Optional
import logging

from ..core.circuit_breaker import CircuitBreaker
from ..core.results import DatabaseResult
from ..core.time_parser import has_time_passed
from ..exceptions import DatabaseError, user_message
from ..storage.base import utcnow
from .engine import StatusEngine
from .schemas import StatusInfo, UPCOMING_HOURS

# Set up logging
logger = logging.getLogger(__name__)


class MedicationStatusCache:
    """
    Cached current, upcoming, overdue and all-today views.

    Attributes:
        current / upcoming / overdue / all_today: Cached lists
        error: User-facing message from the last failure, None after a success
        pending: Medication ids with an unconfirmed write, mapped to the taken value
    """
    def __init__(self, engine: StatusEngine, breaker: Optional[CircuitBreaker] = None):
        self.engine = engine
        self.breaker = breaker or CircuitBreaker(context="status_cache")
        self.current: List[StatusInfo] = []
        self.upcoming: List[StatusInfo] = []
        self.overdue: List[StatusInfo] = []
        self.all_today: List[StatusInfo] = []
        self.error: Optional[str] = None
        self.pending: Dict[int, bool] = {}

    async def _load(self) -> DatabaseResult:
        results = [
            await self.engine.current_medications(),
            await self.engine.upcoming_medications(UPCOMING_HOURS),
            await self.engine.overdue_medications(),
            await self.engine.today_with_status(),
        ]
        for result in results:
            if not result.success:
                return result

        self.current, self.upcoming, self.overdue, self.all_today = (result.data for result in results)
        return DatabaseResult.ok()

    async def refresh(self) -> DatabaseResult:
        """
        Reload every list from the store through the circuit breaker.

        On failure the lists are emptied and `error` holds a user-facing message.
        """
        try:
            result = await self.breaker.execute(self._load)
        except DatabaseError as e:
            result = DatabaseResult.fail(e.to_info())

        if result.success:
            self.error = None
            logger.info(
                f"Medication status refreshed: {len(self.current)} current, {len(self.upcoming)} upcoming, "
                f"{len(self.overdue)} overdue, {len(self.all_today)} today"
            )
        else:
            self.error = user_message(result.error)
            self.current, self.upcoming, self.overdue, self.all_today = [], [], [], []
            logger.error(f"Failed to refresh medication status: {result.error.message}")
        return result

    def _snapshot(self):
        return list(self.current), list(self.upcoming), list(self.overdue), list(self.all_today)

    def _restore(self, snapshot):
        self.current, self.upcoming, self.overdue, self.all_today = snapshot

    def _apply_locally(self, medication_id: int, taken: bool):
        now = self.engine.clock()
        taken_at = utcnow() if taken else None

        if taken:
            self.current = [status for status in self.current if status.medication_id != medication_id]
            self.upcoming = [status for status in self.upcoming if status.medication_id != medication_id]
            self.overdue = [status for status in self.overdue if status.medication_id != medication_id]

        self.all_today = [
            status.model_copy(update={
                "taken": taken,
                "taken_at": taken_at,
                "is_past_due": not taken and has_time_passed(status.time_24h, now),
            })
            if status.medication_id == medication_id else status
            for status in self.all_today
        ]

    async def _change(self, medication_id: int, taken: bool) -> DatabaseResult:
        snapshot = self._snapshot()
        self.pending[medication_id] = taken
        self._apply_locally(medication_id, taken)

        if taken:
            result = await self.engine.mark_taken(medication_id)
        else:
            result = await self.engine.mark_not_taken(medication_id)
        self.pending.pop(medication_id, None)

        if not result.success:
            self._restore(snapshot)
            self.error = user_message(result.error)
            logger.warning(f"Rolled back status change for medication {medication_id}: {result.error.message}")
            return result

        self.error = None
        await self.refresh()
        return result

    async def mark_taken(self, medication_id: int) -> DatabaseResult:
        """Mark taken locally, write it, then reconcile with the store."""
        return await self._change(medication_id, True)

    async def mark_not_taken(self, medication_id: int) -> DatabaseResult:
        """Clear the taken mark locally, write it, then reconcile with the store."""
        return await self._change(medication_id, False)

    def view(self) -> dict:
        """Current cache contents for display."""
        return {
            "current": self.current,
            "upcoming": self.upcoming,
            "overdue": self.overdue,
            "allToday": self.all_today,
            "error": self.error,
            "pending": {str(medication_id): taken for medication_id, taken in self.pending.items()},
        }
