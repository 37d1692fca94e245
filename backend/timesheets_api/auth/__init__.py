"""
Authentication and authorization: JWT tokens, request dependencies and
timesheet permissions.
"""
