"""
Status module.

Derives current, upcoming and overdue views and compliance statistics from
stored medications, and hands pending doses to a reminder scheduler.
"""
