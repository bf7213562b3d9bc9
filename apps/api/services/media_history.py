"""Saved image generations and vision analyses."""

from __future__ import annotations

from typing import List

from sqlalchemy.orm import Session

from models import GeneratedImage, VisionAnalysis
from schemas import GeneratedImageCreate, VisionAnalysisCreate

HISTORY_LIMIT = 100


def list_images(db: Session, limit: int = HISTORY_LIMIT) -> List[GeneratedImage]:
    return db.query(GeneratedImage).order_by(GeneratedImage.created_at.desc()).limit(limit).all()


def save_image(db: Session, body: GeneratedImageCreate) -> GeneratedImage:
    image = GeneratedImage(prompt=body.prompt, model=body.model, image_url=body.image_url)
    db.add(image)
    db.commit()
    db.refresh(image)
    return image


def list_vision_analyses(db: Session, limit: int = HISTORY_LIMIT) -> List[VisionAnalysis]:
    return db.query(VisionAnalysis).order_by(VisionAnalysis.created_at.desc()).limit(limit).all()


def save_vision_analysis(db: Session, body: VisionAnalysisCreate) -> VisionAnalysis:
    analysis = VisionAnalysis(
        image_url=body.image_url,
        prompt=body.prompt,
        model=body.model,
        response=body.response,
    )
    db.add(analysis)
    db.commit()
    db.refresh(analysis)
    return analysis
