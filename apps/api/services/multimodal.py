"""
Vision and image-generation request builders.

Both endpoints are non-streaming proxies; this module only shapes the
upstream messages and digs the generated image out of the response, which
providers return in several places.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

DEFAULT_VISION_PROMPT = "Describe esta imagen en detalle."
IMAGE_MODALITIES = ["text", "image"]

_DATA_URL_RE = re.compile(r"data:image/[^;]+;base64,[A-Za-z0-9+/=]+")


def as_image_url(image: str) -> str:
    """Bare base64 becomes a JPEG data URL; URLs pass through."""
    if image.startswith(("data:", "http://", "https://")):
        return image
    return f"data:image/jpeg;base64,{image}"


def build_vision_messages(
    *,
    image_url: Optional[str],
    image_base64: Optional[str],
    prompt: Optional[str],
) -> List[Dict[str, Any]]:
    image = as_image_url(image_base64) if image_base64 else image_url
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt or DEFAULT_VISION_PROMPT},
                {"type": "image_url", "image_url": {"url": image}},
            ],
        }
    ]


def build_image_generation_messages(prompt: str, source_image: Optional[str] = None) -> List[Dict[str, Any]]:
    if source_image:
        # Edit mode: image first, then the instruction.
        content: Any = [
            {"type": "image_url", "image_url": {"url": as_image_url(source_image)}},
            {"type": "text", "text": prompt},
        ]
    else:
        content = prompt
    return [{"role": "user", "content": content}]


def extract_generated_image(data: Dict[str, Any]) -> Optional[str]:
    """
    First image URL in a completion response, looked up in order:
    `message.images[].image_url.url`, content parts (`image_url` or
    `inline_data`), then a data URL embedded in text content.
    """
    choices = data.get("choices") or []
    message = (choices[0] or {}).get("message") if choices else None
    if not isinstance(message, dict):
        return None

    images = message.get("images") or []
    if images and isinstance(images[0], dict):
        url = (images[0].get("image_url") or {}).get("url")
        if url:
            return url

    content = message.get("content")
    if isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "image_url" and (part.get("image_url") or {}).get("url"):
                return part["image_url"]["url"]
            inline = part.get("inline_data") or {}
            if inline.get("data"):
                mime_type = inline.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"

    if isinstance(content, str):
        match = _DATA_URL_RE.search(content)
        if match:
            return match.group(0)

    return None


def image_debug_info(data: Dict[str, Any]) -> Dict[str, Any]:
    choices = data.get("choices") or []
    message = (choices[0] or {}).get("message") if choices else None
    message = message if isinstance(message, dict) else {}
    return {"images": message.get("images"), "content": message.get("content")}
