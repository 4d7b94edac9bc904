"""Validation utilities."""
from fastapi import HTTPException

# Matches the String(64) id columns
MAX_ID_LENGTH = 64


def validate_id(name: str, value: str) -> str:
    """Validate a database id taken from the request path."""
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=400, detail=f"{name} is required")
    cleaned = value.strip()
    if len(cleaned) > MAX_ID_LENGTH or not cleaned.isprintable():
        raise HTTPException(status_code=400, detail=f"Invalid {name}")
    return cleaned
