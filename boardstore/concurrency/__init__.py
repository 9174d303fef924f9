"""Concurrency utilities for Boardstore."""

from boardstore.concurrency.locks import ScopeLocks

__all__ = ["ScopeLocks"]
