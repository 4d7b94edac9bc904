"""Exam session service."""
