"""Boardstore HTTP API."""
