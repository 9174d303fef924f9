"""API v1 router."""

from fastapi import APIRouter

from boardstore.api.v1.containers import (
    boards_router,
    build_router,
    cards_router,
    me_router,
    workspaces_router,
)
from boardstore.models.container import ContainerKind

router = APIRouter()

# Include sub-routers
router.include_router(workspaces_router, prefix="/workspaces", tags=["workspaces"])
router.include_router(boards_router, prefix="/boards", tags=["boards"])
router.include_router(build_router(ContainerKind.LIST), prefix="/lists", tags=["lists"])
router.include_router(cards_router, prefix="/cards", tags=["cards"])
router.include_router(me_router, prefix="/me", tags=["me"])
