"""Pydantic request models for the Image Fusion API.

Models
------
MergeRequest
    Payload for ``POST /api/merge`` — two images plus optional style and
    model keys.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class MergeRequest(BaseModel):
    """Request body for the ``POST /api/merge`` endpoint.

    Both images are declared optional so that a missing image reaches the
    pipeline and is rejected with a 400 ``{"error": ...}`` response, the same
    shape as every other failure, instead of FastAPI's 422 schema error.

    Attributes:
        image1: First image as a data URI, ``http(s)`` URL or bare base64.
        image2: Second image, same forms as ``image1``.
        style: Style catalog key.  Unknown or missing keys use the default
            style.
        model: Model catalog key.  Unknown or missing keys use the default
            model.
    """

    image1: str | None = Field(
        default=None,
        description="First image (data URI, URL or base64).",
    )
    image2: str | None = Field(
        default=None,
        description="Second image (data URI, URL or base64).",
    )
    style: str | None = Field(
        default=None,
        description="Style key (e.g. 'realistic', 'toy', 'fusion').",
    )
    model: str | None = Field(
        default=None,
        description="Model key (e.g. 'dall-e-3', 'flux-schnell').",
    )
