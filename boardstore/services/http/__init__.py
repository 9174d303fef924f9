"""HTTP client service package."""

from boardstore.services.http.client import (
    HTTPClientManager,
    get_http_client,
    http_client_manager,
)

__all__ = ["HTTPClientManager", "get_http_client", "http_client_manager"]
