"""
Image Generation API Router

Text-to-image and image editing through an image-capable chat model, plus
the saved-images gallery.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import UpstreamServiceError
from schemas import GeneratedImageCreate, GeneratedImageResponse, ImageGenerationRequest
from services import media_history
from services.multimodal import (
    IMAGE_MODALITIES,
    build_image_generation_messages,
    extract_generated_image,
    image_debug_info,
)
from services.openrouter_client import OpenRouterClient, UpstreamError, get_openrouter_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Images"])


@router.post("/image-generation")
async def generate_image(
    body: ImageGenerationRequest,
    client: OpenRouterClient = Depends(get_openrouter_client),
):
    """
    Generate (or, with `sourceImage`, edit) an image.

    Returns `{data: [{url}]}`; the url is usually a data URL.
    """
    model = body.model or settings.DEFAULT_IMAGE_MODEL
    payload = {
        "model": model,
        "modalities": IMAGE_MODALITIES,
        "messages": build_image_generation_messages(body.prompt, body.source_image),
    }
    try:
        data = await client.complete(payload)
    except UpstreamError as e:
        raise UpstreamServiceError(e.status_code, e.body)

    url = extract_generated_image(data)
    if url is None:
        logger.warning(f"Image model {model} returned no image")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "No se generó imagen", "debug": image_debug_info(data)},
        )
    return {"data": [{"url": url}]}


@router.get("/images", response_model=List[GeneratedImageResponse])
def list_images(db: Session = Depends(get_db)):
    """Newest first."""
    return media_history.list_images(db)


@router.post("/images", response_model=GeneratedImageResponse)
def save_image(body: GeneratedImageCreate, db: Session = Depends(get_db)):
    return media_history.save_image(db, body)
