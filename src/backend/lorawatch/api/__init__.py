"""API Routes Module."""

from fastapi import APIRouter

from lorawatch.api import uplinks

router = APIRouter()

router.include_router(uplinks.router, prefix="/uplinks", tags=["Uplinks"])
