from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter

from api.models.imports import PlatformOut
from importer.platforms import PlatformCategory, list_platforms

router = APIRouter()


@router.get("/platforms", response_model=List[PlatformOut])
async def get_platforms(category: Optional[PlatformCategory] = None):
    """Supported data sources, optionally filtered by category."""
    return [p.to_dict() for p in list_platforms(category)]
