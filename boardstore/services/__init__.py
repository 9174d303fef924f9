"""Boardstore services layer."""

from boardstore.services.gateway import GatewayResult, PersistenceGateway

__all__ = ["GatewayResult", "PersistenceGateway"]
