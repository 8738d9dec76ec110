from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from inspection_api.api.deps import get_catalog_repository
from inspection_api.repositories import CatalogRepository

router = APIRouter(prefix="/api/product-catalog", tags=["catalog"])


@router.get("")
def list_catalog(
    scope: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    repo: CatalogRepository = Depends(get_catalog_repository),
) -> Dict[str, Any]:
    """Items of one scope plus a `code -> name` map for quick lookups."""
    scope, items, mapping = repo.list_items(scope, limit)
    return {
        "ok": True,
        "scope": scope,
        "count": len(items),
        "items": [item.model_dump(mode="json") for item in items],
        "map": mapping,
    }


@router.post("", status_code=201)
def add_catalog_item(
    body: Optional[Dict[str, Any]] = Body(None),
    repo: CatalogRepository = Depends(get_catalog_repository),
) -> Dict[str, Any]:
    body = body or {}
    item = repo.add_item(body.get("scope"), body.get("code"), body.get("name"))
    return {"ok": True, "item": item.model_dump(mode="json")}
