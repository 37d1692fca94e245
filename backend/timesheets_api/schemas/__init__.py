"""
Pydantic schemas for API request/response validation.

Provides data models for authentication, system configuration and the
timesheet resource.
"""
