"""
API handlers: read request data, call the pipeline, map the result to the response.

Responsibility: Bridge HTTP types and services. Lives in the API layer so the
pipeline stays free of FastAPI/HTTP types.
"""

import logging

from fastapi import Request

from app.agent.pipeline import ResolutionPipeline
from app.core.config import TRUST_FORWARDED_FOR
from app.schemas.chat import ChatRequest, ChatResponse
from app.services.image_validator import ImageInput

logger = logging.getLogger(__name__)


def resolve_client_id(request: Request) -> str:
    """
    Socket peer address, or the first X-Forwarded-For entry when
    TRUST_FORWARDED_FOR is set (only safe behind a proxy that overwrites it).
    """
    if TRUST_FORWARDED_FOR:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        if forwarded_for.strip():
            return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def build_image_input(body: ChatRequest) -> ImageInput | None:
    """Inline data wins when both a URL and data are sent. A media type alone is not an image."""
    data = (body.image_data or "").strip()
    url = (body.image_url or "").strip()
    if data:
        if url:
            logger.info("[handlers] both imageUrl and imageData sent; using imageData")
        return ImageInput(data=data, media_type=body.image_media_type)
    if url:
        return ImageInput(url=url, media_type=body.image_media_type)
    return None


def handle_chat(body: ChatRequest, client_id: str, pipeline: ResolutionPipeline) -> ChatResponse:
    resolution = pipeline.resolve(client_id, body.message, build_image_input(body))
    return ChatResponse(reply=resolution.reply)
