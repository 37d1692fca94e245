"""
Timesheets API.

FastAPI service for time tracking records: running entries, rates,
rounding, tags, meta-fields and role based access control.
"""
