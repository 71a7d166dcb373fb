"""Pydantic schemas for the HTTP surface and persisted state."""
