"""Schemas for the chat endpoint."""

from pydantic import AliasChoices, BaseModel, Field


class ChatRequest(BaseModel):
    """Request body for POST /chat. An image is sent either as a URL or as base64 data."""

    message: str = Field("", description="User question.")
    image_url: str | None = Field(
        None,
        validation_alias=AliasChoices("imageUrl", "image_url"),
        description="http(s) URL of an image to analyse.",
    )
    image_data: str | None = Field(
        None,
        validation_alias=AliasChoices("imageData", "imageBase64", "image_data"),
        description="Base64-encoded image bytes (a data: URI prefix is accepted).",
    )
    image_media_type: str | None = Field(
        None,
        validation_alias=AliasChoices("imageMediaType", "imageMimeType", "image_media_type"),
        description="Media type of the image: image/jpeg, image/png or image/webp.",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"message": "What are your hours?"},
                {"message": "What is the total on this receipt?", "imageUrl": "https://example.com/receipt.jpg"},
            ]
        }
    }


class ChatResponse(BaseModel):
    """Response for POST /chat. Always present, whichever stage produced it."""

    reply: str = Field(..., description="Answer, or a canned notice when no answer could be given.")
