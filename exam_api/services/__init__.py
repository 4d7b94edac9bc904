"""Service layer for exam sessions."""
