"""
Medication Router - API endpoints for medications and their daily status.

Request bodies are passed to the store as plain objects so that validation
failures come back as INVALID_INPUT envelopes like every other store error.
"""
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Query, status

from ..core.results import DatabaseResult
from ..dependencies import get_store
from ..exceptions import NotFoundError, envelope_response
from ..storage.store import ValidatingRetryingStore

router = APIRouter()

@router.get("/")
async def list_medications(store: ValidatingRetryingStore = Depends(get_store)):
    """
    Get every medication ordered by dose time
    """
    return envelope_response(await store.get_all_medications())

@router.post("/")
async def create_medication(
    medication: Dict[str, Any] = Body(..., description="Medication with name, dosage, frequency, time and startDate"),
    store: ValidatingRetryingStore = Depends(get_store)
):
    """
    Add a medication

    Returns the new medication's id.
    """
    return envelope_response(await store.add_medication(medication), status.HTTP_201_CREATED)

@router.get("/today")
async def list_today_medications(store: ValidatingRetryingStore = Depends(get_store)):
    """
    Get the medications active today
    """
    return envelope_response(await store.get_today_medications())

@router.get("/stats")
async def get_stats(store: ValidatingRetryingStore = Depends(get_store)):
    """
    Get storage statistics
    """
    return envelope_response(await store.get_stats())

@router.post("/seed")
async def seed_medications(store: ValidatingRetryingStore = Depends(get_store)):
    """
    Load the sample medications into an empty store

    Returns how many medications were added.
    """
    return envelope_response(await store.seed_data())

@router.get("/by-date/{day}")
async def list_medications_by_date(
    day: str,
    with_status: bool = Query(False, description="Include each medication's status row for the day"),
    store: ValidatingRetryingStore = Depends(get_store)
):
    """
    Get the medications active on a day (YYYY-MM-DD)
    """
    if with_status:
        return envelope_response(await store.get_medications_with_status_for_date(day))
    return envelope_response(await store.get_medications_by_date(day))

@router.get("/{medication_id}")
async def get_medication(medication_id: int, store: ValidatingRetryingStore = Depends(get_store)):
    """
    Get a medication by ID
    """
    result = await store.get_medication_by_id(medication_id)
    if result.success and result.data is None:
        result = DatabaseResult.fail(NotFoundError("Medication", medication_id, "get_medication_by_id").to_info())
    return envelope_response(result)

@router.patch("/{medication_id}")
async def update_medication(
    medication_id: int,
    updates: Dict[str, Any] = Body(..., description="Fields to change"),
    store: ValidatingRetryingStore = Depends(get_store)
):
    """
    Partially update a medication

    Unknown fields such as id or createdAt are ignored.
    """
    return envelope_response(await store.update_medication(medication_id, updates))

@router.delete("/{medication_id}")
async def delete_medication(medication_id: int, store: ValidatingRetryingStore = Depends(get_store)):
    """
    Delete a medication and its status history
    """
    return envelope_response(await store.delete_medication(medication_id))

@router.get("/{medication_id}/status/{day}")
async def get_medication_status(
    medication_id: int,
    day: str,
    store: ValidatingRetryingStore = Depends(get_store)
):
    """
    Get a medication's status row for a day (data is null when none was written)
    """
    return envelope_response(await store.get_medication_status(medication_id, day))

@router.put("/{medication_id}/status/{day}")
async def set_medication_status(
    medication_id: int,
    day: str,
    taken: Any = Body(..., embed=True),
    store: ValidatingRetryingStore = Depends(get_store)
):
    """
    Record whether a medication was taken on a day
    """
    return envelope_response(await store.update_medication_status(medication_id, day, taken))
