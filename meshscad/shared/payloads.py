from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RequestEnvelope(BaseModel):
    """Orchestrator payload shape: ``{ "data": {...}, "meta": {...} }``."""

    data: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)


def unwrap_request(raw_body: Any) -> tuple[dict[str, Any], dict[str, Any], bool]:
    """
    Returns ``(data, meta, wrapped)``. Plain request bodies pass through
    with empty meta and ``wrapped=False``.
    """
    if isinstance(raw_body, dict) and isinstance(raw_body.get("data"), dict):
        envelope = RequestEnvelope.model_validate(raw_body)
        return envelope.data, envelope.meta, True
    if not isinstance(raw_body, dict):
        raise ValueError("Request body must be a JSON object")
    return raw_body, {}, False
