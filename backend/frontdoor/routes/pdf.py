from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..errors import ValidationError, error_boundary
from ..pdf import extract_text

router = APIRouter(prefix="/api", tags=["pdf"])

@router.post("/extract-pdf")
async def extract_pdf(request: Request):
    with error_boundary("Failed to extract PDF text"):
        form = await request.form()
        upload = form.get("pdf")
        if not isinstance(upload, UploadFile):
            raise ValidationError("No PDF file provided")

        data = await upload.read()
        # pypdf parsing is CPU bound; keep it off the event loop
        text = await run_in_threadpool(extract_text, data)
        if not text.strip():
            raise ValidationError("No text found in PDF")

        return {"text": text}
