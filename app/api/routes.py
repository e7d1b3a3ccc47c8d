"""
API route aggregator: register endpoints; no logic, only delegate to handlers.
"""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Request

from app.agent.pipeline import ResolutionPipeline, build_pipeline
from app.api.handlers import handle_chat, resolve_client_id
from app.schemas.chat import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@lru_cache()
def get_pipeline() -> ResolutionPipeline:
    """Process-wide pipeline, built on first use (loads the FAQ once)."""
    return build_pipeline()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Customer service bot running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post(
    "/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Ask a question (optionally with an image)",
    description="Always returns 200 with a reply: an FAQ answer, a model answer, or a canned notice (rate limit, rejected image, service unavailable).",
)
def post_chat(
    body: ChatRequest,
    request: Request,
    pipeline: ResolutionPipeline = Depends(get_pipeline),
) -> ChatResponse:
    return handle_chat(body, resolve_client_id(request), pipeline)
