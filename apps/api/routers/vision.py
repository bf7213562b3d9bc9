"""
Vision API Router

Proxies an image + question to a vision model and keeps a history of
saved analyses.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import UpstreamServiceError, ValidationError
from schemas import VisionAnalysisCreate, VisionAnalysisResponse, VisionRequest
from services import media_history
from services.multimodal import build_vision_messages
from services.openrouter_client import OpenRouterClient, UpstreamError, get_openrouter_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Vision"])


@router.post("/vision")
async def analyze_image(
    body: VisionRequest,
    client: OpenRouterClient = Depends(get_openrouter_client),
):
    """Returns the upstream completion JSON unchanged."""
    if not body.image_url and not body.image_base64:
        raise ValidationError("Se requiere imageUrl o imageBase64", field="image")

    payload = {
        "model": body.model or settings.DEFAULT_VISION_MODEL,
        "messages": build_vision_messages(
            image_url=body.image_url,
            image_base64=body.image_base64,
            prompt=body.prompt,
        ),
    }
    try:
        return await client.complete(payload)
    except UpstreamError as e:
        raise UpstreamServiceError(e.status_code, e.body)


@router.get("/vision-history", response_model=List[VisionAnalysisResponse])
def list_vision_history(db: Session = Depends(get_db)):
    return media_history.list_vision_analyses(db)


@router.post("/vision-history", response_model=VisionAnalysisResponse)
def save_vision_history(body: VisionAnalysisCreate, db: Session = Depends(get_db)):
    return media_history.save_vision_analysis(db, body)
