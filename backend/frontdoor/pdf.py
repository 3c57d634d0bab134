import io
import logging

from pypdf import PdfReader

logger = logging.getLogger(__name__)


def extract_text(data: bytes) -> str:
    """Concatenate the embedded text of every page, in page order.

    Scanned, image-only documents come back as an empty string; parse errors
    from pypdf propagate to the caller.
    """
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    text = "\n".join(pages)
    logger.info("Extracted %d characters from %d PDF pages", len(text), len(pages))
    return text
