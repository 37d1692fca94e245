"""
Timesheet domain logic: rounding, rate calculation, date handling,
meta-fields, querying and the service applying them.
"""
