"""
Baseline medications loaded into an empty store.
"""
from datetime import date, timedelta
from typing import List, Optional

from .schemas import NewMedication

# Days before today that seeded courses start
SEED_START_OFFSET_DAYS = 30

_SEED_MEDICATIONS = [
    ("Lisinopril", "10mg", "Once daily", "08:00", "Take with food"),
    ("Metformin", "500mg", "Twice daily", "12:00", "Take after meals"),
    ("Atorvastatin", "20mg", "Once daily", "20:00", "Take in the evening"),
    ("Vitamin D3", "1000 IU", "Once daily", "10:00", "Take with breakfast"),
]


def seed_medications(today: Optional[date] = None) -> List[NewMedication]:
    """
    Build the deterministic seed set.

    Args:
        today: Reference day (defaults to the local current date)

    Returns:
        List[NewMedication]: Open-ended courses that started 30 days ago
    """
    today = today or date.today()
    start = today - timedelta(days=SEED_START_OFFSET_DAYS)
    return [
        NewMedication(
            name=name,
            dosage=dosage,
            frequency=frequency,
            time=time,
            instructions=instructions,
            start_date=start,
            end_date=None,
        )
        for name, dosage, frequency, time, instructions in _SEED_MEDICATIONS
    ]
