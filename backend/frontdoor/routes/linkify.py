from fastapi import APIRouter, Body

from ..errors import ValidationError, error_boundary
from ..linkify import parts_json, render_html

router = APIRouter(prefix="/api", tags=["linkify"])

@router.post("/linkify")
async def linkify(payload: dict | None = Body(None)):
    text = (payload or {}).get("text")
    if not isinstance(text, str):
        raise ValidationError("Text is required")
    with error_boundary("Failed to linkify text"):
        return {"parts": parts_json(text), "html": render_html(text)}
