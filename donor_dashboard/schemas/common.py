"""Shared Pydantic schema base and field types."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, PlainSerializer

# Monetary values are floats internally and two-decimal strings on the wire.
Money = Annotated[float, PlainSerializer(lambda v: f"{(v or 0.0):.2f}", return_type=str)]


class ApiModel(BaseModel):
    """All API schemas inherit from this; they read straight off ORM rows and service dataclasses."""

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }


class HealthResponse(BaseModel):
    """Health-check response returned by /health."""
    status: str = "ok"
    app: str
    env: str
