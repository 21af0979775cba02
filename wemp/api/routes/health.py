"""Liveness probe."""

from fastapi import APIRouter

from wemp import __version__

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
