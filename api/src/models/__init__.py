"""Data models for the FastAPI service.

This package contains the SQLAlchemy schema (db), the row models returned
by repositories, and the Pydantic request/response schemas.
"""
