"""Data models."""

from boardstore.models.container import (
    ARCHIVE_NAME,
    ROW_FIELDS,
    Container,
    ContainerKind,
    ResultSource,
)

__all__ = [
    "ARCHIVE_NAME",
    "ROW_FIELDS",
    "Container",
    "ContainerKind",
    "ResultSource",
]
