"""
MedAlert backend core.

Medication storage with interchangeable backends, a validating and retrying
store wrapper, time-of-day parsing, and derived daily status views, exposed
through a small local FastAPI app.
"""
__version__ = "1.0.0"
