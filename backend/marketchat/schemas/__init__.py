"""Pydantic records and API payloads."""
