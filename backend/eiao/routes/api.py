"""
Everything Is An Ordeal: JSON API Route Handlers
===================================================

What:  Create, delete and fetch ordeals over HTTP.
How:   Extract form fields / path parameters, delegate to OrdealService,
       shape the response. Errors are raised as application exceptions and
       formatted by the global handlers in main.py.

Routes:
    POST   /api/ordeal/create          multipart: path, image
    DELETE /api/ordeal/delete/{path}   always 200, plain text
    GET    /api/ordeal/{path}          JSON ordeal or 404
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import PlainTextResponse

from eiao.dependencies import get_ordeal_service
from eiao.schemas.ordeal import CreateOrdealResponse, ErrorResponse, OrdealResponse
from eiao.services.ordeal_service import OrdealService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ordeal", tags=["Ordeals"])


@router.post(
    "/create",
    response_model=CreateOrdealResponse,
    responses={
        200: {"description": "Ordeal created", "model": CreateOrdealResponse},
        400: {"description": "No image attached, or not a readable image", "model": ErrorResponse},
        500: {"description": "Storage or database failure", "model": ErrorResponse},
    },
    summary="Create an ordeal",
    description=(
        "Creates an ordeal at the given path with the uploaded image. The image is "
        "shrunk to fit the configured bound before it is stored. The response tells "
        "the client where the new ordeal lives."
    ),
)
async def create_ordeal(
    path: str = Form(default="", description="Path of the new ordeal; slashes are removed"),
    image: Optional[UploadFile] = File(default=None, description="Image to attach"),
    service: OrdealService = Depends(get_ordeal_service),
) -> CreateOrdealResponse:
    filename = None
    content = None
    if image is not None:
        try:
            filename = image.filename
            content = await image.read()
        finally:
            await image.close()

    logger.info(
        "Received create request: path=%r, filename=%s, size=%d bytes",
        path,
        filename or "none",
        len(content or b""),
    )

    record = await service.create_ordeal(path, filename, content)
    return CreateOrdealResponse(redirect=f"/{quote(record.path)}")


@router.delete(
    "/delete/{path:path}",
    response_class=PlainTextResponse,
    summary="Delete an ordeal",
    description=(
        "Deletes the ordeal and its image. Answers 200 whether or not the ordeal "
        "existed."
    ),
)
async def delete_ordeal(
    path: str,
    service: OrdealService = Depends(get_ordeal_service),
) -> PlainTextResponse:
    outcome = await service.delete_ordeal(path)
    return PlainTextResponse(f"Ordeal /{outcome.key} deleted.")


@router.get(
    "/{path:path}",
    response_model=OrdealResponse,
    responses={
        200: {"description": "The ordeal, counting this view", "model": OrdealResponse},
        404: {"description": "No ordeal at this path", "model": ErrorResponse},
    },
    summary="Fetch an ordeal",
    description=(
        "Returns the ordeal as JSON. Fetching counts as a view: `hits` includes this "
        "request, and the stored counter is incremented in the background."
    ),
)
async def get_ordeal(
    path: str,
    service: OrdealService = Depends(get_ordeal_service),
) -> OrdealResponse:
    record = await service.get_ordeal_for_api(path)
    return OrdealResponse.for_display(record)
