"""
Image routes. New uploads go to Cloudinary; `GET /api/images/{id}` still
serves bytes stored in Postgres by older clients.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from inspection_api.api.deps import get_app_settings, get_image_repository
from inspection_api.config import Settings
from inspection_api.errors import NotFoundError, ValidationError
from inspection_api.media import cloudinary_store
from inspection_api.repositories import ImageRepository
from inspection_api.utils.normalize import safe_list

router = APIRouter(prefix="/api/images", tags=["images"])


async def _json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise ValidationError("invalid JSON body")
    return body if isinstance(body, dict) else {}


@router.post("")
async def upload_image(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> Dict[str, Any]:
    """
    Accepts a multipart upload (any field name, first file wins) or a
    `data:` URL in the `data` field of a form or JSON body.
    """
    cloudinary_store.require_config()

    upload: Optional[UploadFile] = None
    data_url: Any = None
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        upload = next((v for _, v in form.multi_items() if isinstance(v, UploadFile)), None)
        data_url = form.get("data")
    else:
        data_url = (await _json_body(request)).get("data")

    if upload is not None:
        data = await upload.read(settings.upload_max_bytes + 1)
        if len(data) > settings.upload_max_bytes:
            raise ValidationError("file too large", maxBytes=settings.upload_max_bytes)
        stored = await run_in_threadpool(cloudinary_store.upload_bytes, data, settings)
    elif isinstance(data_url, str) and data_url.startswith("data:"):
        stored = await run_in_threadpool(cloudinary_store.upload_data_url, data_url, settings)
    else:
        raise ValidationError("no file/data")
    return {"ok": True, **stored}


@router.delete("")
async def delete_images(
    request: Request,
    url: Optional[str] = Query(None),
    public_id: Optional[str] = Query(None, alias="publicId"),
) -> Dict[str, Any]:
    """
    Delete by delivery URL(s) and/or public id(s). `resourceType` and
    `deliveryType` in the body override what is parsed from URLs.
    """
    cloudinary_store.require_config()
    body = await _json_body(request)

    urls: List[Any] = [url, body.get("url"), *safe_list(body.get("urls"))]
    public_ids: List[Any] = [public_id, body.get("publicId"), *safe_list(body.get("publicIds"))]
    return await run_in_threadpool(
        cloudinary_store.destroy_many,
        urls,
        public_ids,
        body.get("resourceType") or None,
        body.get("deliveryType") or None,
    )


@router.get("/{image_id}")
def get_image(image_id: str, repo: ImageRepository = Depends(get_image_repository)) -> Response:
    image = repo.get(image_id)
    if image is None:
        raise NotFoundError("not found")
    return Response(
        content=image.data,
        media_type=image.mimetype,
        headers={"Content-Disposition": f'inline; filename="{image.filename}"'},
    )
