"""
Store wrapper used by every caller.

Validates input, delegates to the configured adapter, retries transient
failures with exponential backoff and converts every outcome into a
DatabaseResult envelope. Nothing raises across this boundary.
"""
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import logging

from ..core.results import DatabaseResult, ErrorInfo
from ..exceptions import DatabaseError, ErrorCode, classify_exception
from .base import StorageAdapter
from .validation import (
    coerce_date,
    validate_medication_id,
    validate_new_medication,
    validate_taken,
    validate_update,
)

# Set up logging
logger = logging.getLogger(__name__)


class ValidatingRetryingStore:
    """
    Validating, retrying facade over a StorageAdapter.

    Args:
        adapter: Backend chosen by the factory
        retry_attempts: Maximum attempts for transient failures
        retry_delay: Base backoff delay in seconds (doubled after each attempt)
        init_timeout: Upper bound in seconds for `init`
        sleep: Coroutine used for backoff waits
        today: Callable giving the local calendar day
    """
    def __init__(
        self,
        adapter: StorageAdapter,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        init_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], date] = date.today
    ):
        self.adapter = adapter
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.init_timeout = init_timeout
        self._sleep = sleep
        self._today = today
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def platform(self) -> str:
        return self.adapter.platform

    async def init(self) -> DatabaseResult:
        """
        Initialize the adapter once.

        Concurrent and repeated calls share the first successful outcome.

        Returns:
            DatabaseResult: Success, or INIT_FAILED on timeout or adapter failure
        """
        async with self._init_lock:
            if self._initialized:
                return DatabaseResult.ok()
            try:
                await asyncio.wait_for(self.adapter.init(), timeout=self.init_timeout)
            except asyncio.TimeoutError:
                logger.error(f"Database initialization timed out after {self.init_timeout}s")
                return DatabaseResult.fail(ErrorInfo(
                    code=ErrorCode.INIT_FAILED.value,
                    message=f"Database initialization timed out after {self.init_timeout} seconds",
                    details={"platform": self.platform}
                ))
            except Exception as e:
                error = classify_exception(e, "init")
                if not isinstance(e, DatabaseError):
                    error = DatabaseError(ErrorCode.INIT_FAILED, error.message, "init", error.details)
                logger.error(f"Database initialization failed: {error.message}")
                return DatabaseResult.fail(error.to_info())

            self._initialized = True
            logger.info(f"Store initialized on {self.platform} storage")
            return DatabaseResult.ok()

    async def close(self) -> DatabaseResult:
        if not self._initialized:
            return DatabaseResult.ok()
        try:
            await self.adapter.close()
        except Exception as e:
            error = classify_exception(e, "close")
            logger.error(f"Failed to close storage: {error.message}")
            return DatabaseResult.fail(error.to_info())
        finally:
            self._initialized = False
        return DatabaseResult.ok()

    async def _execute(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        max_attempts: Optional[int] = None
    ) -> DatabaseResult:
        if not self._initialized:
            return DatabaseResult.fail(ErrorInfo(
                code=ErrorCode.CONNECTION_FAILED.value,
                message="Database not initialized. Call init() first.",
                details={"operation": operation}
            ))

        attempts = max_attempts or self.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return DatabaseResult.ok(await func(*args))
            except Exception as e:
                error = classify_exception(e, operation)

            if not error.is_transient or attempt == attempts:
                logger.error(
                    f"{operation} failed after {attempt} attempt(s): {error.code.value} - {error.message}"
                )
                return DatabaseResult.fail(error.to_info())

            delay = self.retry_delay * 2 ** (attempt - 1)
            logger.warning(
                f"{operation} attempt {attempt} failed with {error.code.value}; retrying in {delay}s"
            )
            await self._sleep(delay)

    @staticmethod
    def _rejected(error: DatabaseError) -> DatabaseResult:
        logger.info(f"Rejected {error.operation}: {error.message}")
        return DatabaseResult.fail(error.to_info())

    # Medications

    async def get_all_medications(self) -> DatabaseResult:
        return await self._execute("get_all_medications", self.adapter.get_all)

    async def get_medication_by_id(self, medication_id: Any) -> DatabaseResult:
        try:
            medication_id = validate_medication_id(medication_id, "get_medication_by_id")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("get_medication_by_id", self.adapter.get_by_id, medication_id)

    async def add_medication(self, medication: Any) -> DatabaseResult:
        """
        Validate and insert a medication.

        Returns:
            DatabaseResult: The new id on success
        """
        try:
            new_medication = validate_new_medication(medication, "add_medication")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("add_medication", self.adapter.add, new_medication)

    async def update_medication(self, medication_id: Any, updates: Any) -> DatabaseResult:
        """
        Apply a partial update.

        Returns:
            DatabaseResult: The updated record on success, NOT_FOUND for an unknown id
        """
        try:
            medication_id = validate_medication_id(medication_id, "update_medication")
            changes = validate_update(updates, "update_medication")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("update_medication", self.adapter.update, medication_id, changes)

    async def delete_medication(self, medication_id: Any) -> DatabaseResult:
        try:
            medication_id = validate_medication_id(medication_id, "delete_medication")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("delete_medication", self.adapter.delete, medication_id)

    async def get_medications_by_date(self, day: Any) -> DatabaseResult:
        try:
            day = coerce_date(day, "date", "get_medications_by_date")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("get_medications_by_date", self.adapter.get_by_date, day)

    async def get_today_medications(self) -> DatabaseResult:
        return await self._execute("get_today_medications", self.adapter.get_by_date, self._today())

    # Status

    async def get_medication_status(self, medication_id: Any, day: Any) -> DatabaseResult:
        try:
            medication_id = validate_medication_id(medication_id, "get_medication_status")
            day = coerce_date(day, "date", "get_medication_status")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("get_medication_status", self.adapter.get_status, medication_id, day)

    async def get_all_statuses_for_date(self, day: Any) -> DatabaseResult:
        try:
            day = coerce_date(day, "date", "get_all_statuses_for_date")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute("get_all_statuses_for_date", self.adapter.get_all_statuses_for_date, day)

    async def update_medication_status(self, medication_id: Any, day: Any, taken: Any) -> DatabaseResult:
        """
        Record whether a medication was taken on a day.

        Returns:
            DatabaseResult: The stored status row on success
        """
        try:
            medication_id = validate_medication_id(medication_id, "update_medication_status")
            day = coerce_date(day, "date", "update_medication_status")
            taken = validate_taken(taken, "update_medication_status")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute(
            "update_medication_status", self.adapter.upsert_status, medication_id, day, taken
        )

    async def get_medications_with_status_for_date(self, day: Any) -> DatabaseResult:
        try:
            day = coerce_date(day, "date", "get_medications_with_status_for_date")
        except DatabaseError as e:
            return self._rejected(e)
        return await self._execute(
            "get_medications_with_status_for_date", self.adapter.get_with_status_for_date, day
        )

    # Maintenance

    async def seed_data(self) -> DatabaseResult:
        """Insert the baseline medications into an empty store. Attempted once."""
        return await self._execute("seed_data", self.adapter.seed, max_attempts=1)

    async def _collect_stats(self) -> Dict[str, Any]:
        today = self._today()
        return {
            "medicationCount": await self.adapter.count(),
            "todayStatusCount": len(await self.adapter.get_all_statuses_for_date(today)),
            "platform": self.platform,
            "initialized": self._initialized,
        }

    async def get_stats(self) -> DatabaseResult:
        """Medication count, today's status row count, platform and init state."""
        return await self._execute("get_stats", self._collect_stats)

    async def health_check(self) -> Dict[str, Any]:
        """
        Report whether the store can serve requests.

        Returns:
            dict: {"healthy": bool, "message": str, "details": dict | None}
        """
        if not self._initialized:
            return {"healthy": False, "message": "Database not initialized", "details": {"platform": self.platform}}

        result = await self.get_stats()
        if not result.success:
            return {
                "healthy": False,
                "message": f"Health check failed: {result.error.message}",
                "details": {"platform": self.platform, "code": result.error.code},
            }
        return {"healthy": True, "message": "Database is healthy", "details": result.data}
