"""
Database layer: SQLAlchemy models, engine and session dependency.
"""
