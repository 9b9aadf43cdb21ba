"""
Shaadi Mantrana — Main API Router

Aggregates all sub-routers under a single prefix so that ``mantrana.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from mantrana.api import access, connections, matching, users

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(matching.router, prefix="/matches", tags=["Matching"])
router.include_router(connections.router, prefix="/connections", tags=["Connections"])
router.include_router(access.router, prefix="/access", tags=["Access"])
