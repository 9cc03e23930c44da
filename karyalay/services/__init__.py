"""Connectivity helpers for external services."""

from .postgres import PostgresConnectionTester, to_plain_dsn

__all__ = ["PostgresConnectionTester", "to_plain_dsn"]
