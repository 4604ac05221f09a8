"""SQLAlchemy models, session bootstrap and CRUD helpers."""
