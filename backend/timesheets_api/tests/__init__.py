"""
Test package for the timesheets API.

Covers authentication, the timesheet resource (listing and filters, CRUD,
running entries and actions), permissions, rounding and rate calculation,
datetime handling, meta-fields and system configuration.
"""
