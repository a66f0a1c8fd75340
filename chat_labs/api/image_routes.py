"""
Image Routes
============

Serves stored images by thread id and file name.
"""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

router = APIRouter(prefix="/api/images", tags=["images"])

# Injected by server
image_store = None


@router.get("")
async def get_image(t: str = Query(..., description="Thread id"), img: str = Query(..., description="File name")):
    """Return a stored PNG."""
    if not image_store:
        raise HTTPException(status_code=500, detail="Image store not initialized")

    data = image_store.load(t, img)
    if data is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=data, media_type="image/png", headers={"Cache-Control": "no-store"})
