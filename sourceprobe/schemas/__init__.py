"""Pydantic schemas for the HTTP layer."""
