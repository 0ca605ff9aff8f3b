"""
Medications module.

This module provides the medication and daily status data model:
- Pydantic schemas for stored records and create/update payloads
- SQLAlchemy models for the relational backend
- The baseline seed set
- API endpoints for medication CRUD and status writes
"""
