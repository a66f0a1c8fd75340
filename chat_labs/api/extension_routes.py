"""
Extension Routes
================

API routes for registering extensions.
"""

from fastapi import APIRouter, HTTPException
from typing import List

from ..models.extension_models import Extension

router = APIRouter(prefix="/api/extensions", tags=["extensions"])

# Injected by server
extension_registry = None


def _registry():
    if not extension_registry:
        raise HTTPException(status_code=500, detail="Extension registry not initialized")
    return extension_registry


@router.get("")
async def list_extensions() -> List[Extension]:
    """List registered extensions."""
    return _registry().list_extensions()


@router.post("")
async def save_extension(extension: Extension) -> Extension:
    """Register or replace an extension."""
    return _registry().save_extension(extension)


@router.get("/{extension_id}")
async def get_extension(extension_id: str) -> Extension:
    """Get one extension."""
    extension = _registry().find_by_id(extension_id)
    if not extension:
        raise HTTPException(status_code=404, detail="Extension not found")
    return extension


@router.delete("/{extension_id}")
async def delete_extension(extension_id: str):
    """Remove an extension."""
    if not _registry().delete_extension(extension_id):
        raise HTTPException(status_code=404, detail="Extension not found")
    return {"message": "Extension deleted", "extension_id": extension_id}
