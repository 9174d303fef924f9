"""Remote backends for the hosted store."""

from boardstore.backends.base import RemoteBackend
from boardstore.backends.rest import RestBackend
from boardstore.backends.sql import SqlBackend

__all__ = ["RemoteBackend", "RestBackend", "SqlBackend"]
