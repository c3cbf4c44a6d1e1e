# src/privchat/db/__init__.py
"""Database configuration and utilities."""

from .session import SessionLocal, get_session

__all__ = ["get_session", "SessionLocal"]
