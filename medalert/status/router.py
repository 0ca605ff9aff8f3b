"""
Status Router - API endpoints for today's derived medication status.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..dependencies import get_engine, get_status_cache
from ..core.results import DatabaseResult
from ..exceptions import envelope_response
from .cache import MedicationStatusCache
from .engine import StatusEngine
from .reminders import pending_reminders
from .schemas import SortBy, SortOrder, StatusFilterOptions, UPCOMING_HOURS

router = APIRouter()

@router.get("/today")
async def today(engine: StatusEngine = Depends(get_engine)):
    """
    Get all of today's medications with derived status
    """
    return envelope_response(await engine.today_with_status())

@router.get("/current")
async def current(
    include_taken: bool = Query(False, description="Include medications already taken"),
    hours_before: Optional[float] = Query(2, ge=0, description="Hours before now covered by the window"),
    hours_after: Optional[float] = Query(2, ge=0, description="Hours after now covered by the window"),
    unbounded: bool = Query(False, description="Ignore the time window"),
    sort_by: SortBy = Query(SortBy.TIME),
    sort_order: SortOrder = Query(SortOrder.ASC),
    engine: StatusEngine = Depends(get_engine)
):
    """
    Get medications due around now
    """
    options = StatusFilterOptions(
        include_taken=include_taken,
        hours_before=None if unbounded else hours_before,
        hours_after=None if unbounded else hours_after,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return envelope_response(await engine.current_medications(options))

@router.get("/upcoming")
async def upcoming(
    hours: float = Query(UPCOMING_HOURS, gt=0, le=24, description="Look-ahead in hours"),
    engine: StatusEngine = Depends(get_engine)
):
    """
    Get untaken medications due within the next hours
    """
    return envelope_response(await engine.upcoming_medications(hours))

@router.get("/overdue")
async def overdue(engine: StatusEngine = Depends(get_engine)):
    """
    Get medications whose time has passed today without being taken
    """
    return envelope_response(await engine.overdue_medications())

@router.get("/summary")
async def summary(engine: StatusEngine = Depends(get_engine)):
    """
    Get dashboard counts for today
    """
    return envelope_response(await engine.status_summary())

@router.get("/compliance")
async def compliance(
    days: int = Query(7, ge=1, le=365, description="Number of days to look back, today included"),
    engine: StatusEngine = Depends(get_engine)
):
    """
    Get adherence statistics
    """
    return envelope_response(await engine.compliance_stats(days))

@router.get("/reminders")
async def reminders(
    window: Optional[str] = Query(None, description="immediate, current or extended"),
    engine: StatusEngine = Depends(get_engine)
):
    """
    Get the reminders that would be scheduled for today's pending medications
    """
    return envelope_response(await pending_reminders(engine, window))

@router.get("/dashboard")
async def dashboard(cache: MedicationStatusCache = Depends(get_status_cache)):
    """
    Reload and return the cached current, upcoming, overdue and all-today lists

    A refresh failure still returns the (emptied) lists with a user-facing error message.
    """
    result = await cache.refresh()
    if not result.success:
        return envelope_response(DatabaseResult(success=False, data=cache.view(), error=result.error))
    return envelope_response(DatabaseResult.ok(cache.view()))

@router.post("/{medication_id}/taken")
async def mark_taken(medication_id: int, cache: MedicationStatusCache = Depends(get_status_cache)):
    """
    Mark a medication as taken today
    """
    return envelope_response(await cache.mark_taken(medication_id))

@router.post("/{medication_id}/not-taken")
async def mark_not_taken(medication_id: int, cache: MedicationStatusCache = Depends(get_status_cache)):
    """
    Undo today's taken mark for a medication
    """
    return envelope_response(await cache.mark_not_taken(medication_id))

@router.post("/{medication_id}/toggle")
async def toggle(medication_id: int, engine: StatusEngine = Depends(get_engine)):
    """
    Flip today's taken flag for a medication
    """
    return envelope_response(await engine.toggle(medication_id))
