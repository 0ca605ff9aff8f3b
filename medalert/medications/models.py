"""
Medication Models - Persisted medications and their per-day taken status.

Column names are camelCase (`startDate`, `medicationId`, ...) so the relational
and flat backends share one record shape; attributes stay snake_case.
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base


class Medication(Base):
    """
    Medication Model - A medication course with a single daily dose time

    Fields:
    - id: Primary key
    - name: Medication name
    - dosage: Dosage description
    - frequency: Free-text frequency
    - time: Dose time, canonical "HH:MM"
    - instructions: Optional instructions
    - start_date: First day of the course
    - end_date: Last day of the course, NULL when open-ended
    - created_at / updated_at: UTC timestamps (stored naive)
    """
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=False)
    frequency = Column(String, nullable=False)
    time = Column(String, nullable=False)
    instructions = Column(String, nullable=True)
    start_date = Column("startDate", Date, nullable=False)
    end_date = Column("endDate", Date, nullable=True)
    created_at = Column("createdAt", DateTime, nullable=False)
    updated_at = Column("updatedAt", DateTime, nullable=False)

    # Status rows are removed by the database cascade
    statuses = relationship("MedicationStatusEntry", back_populates="medication", passive_deletes=True)

    def __repr__(self):
        """String representation of the Medication model"""
        return f"<Medication(id={self.id}, name='{self.name}', time='{self.time}')>"


class MedicationStatusEntry(Base):
    """
    Medication Status Model - Whether a medication was taken on a day

    Fields:
    - id: Primary key
    - medication_id: Foreign key to Medication (cascade delete)
    - date: Calendar day
    - taken: Whether the dose was taken
    - taken_at: When it was marked taken, NULL otherwise
    - created_at / updated_at: UTC timestamps (stored naive)
    """
    __tablename__ = "medication_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    medication_id = Column(
        "medicationId",
        Integer,
        ForeignKey("medications.id", ondelete="CASCADE"),
        nullable=False
    )
    date = Column(Date, nullable=False)
    taken = Column(Boolean, nullable=False, default=False)
    taken_at = Column("takenAt", DateTime, nullable=True)
    created_at = Column("createdAt", DateTime, nullable=False)
    updated_at = Column("updatedAt", DateTime, nullable=False)

    medication = relationship("Medication", back_populates="statuses")

    def __repr__(self):
        """String representation of the MedicationStatusEntry model"""
        return f"<MedicationStatusEntry(medication_id={self.medication_id}, date={self.date}, taken={self.taken})>"
