"""Local Tesseract OCR provider.

PDFs are rendered page by page through pdf2image (pdftoppm), images are
opened with Pillow, and each page goes through pytesseract. All of that is
blocking, so it runs in the threadpool to keep the event loop (and the job
manager's timers) responsive.
"""

import io
import logging
from typing import Callable, List, Optional, Tuple

import httpx
import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from app.ocr.providers import OcrProvider, OcrProviderError, OcrResult, ProgressCallback

logger = logging.getLogger(__name__)

# Fetches the raw bytes behind a storage path
DocumentLoader = Callable[[str], bytes]

_RENDER_ERRORS = (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
    UnidentifiedImageError,
)
_TESSERACT_ERRORS = (pytesseract.TesseractError, pytesseract.TesseractNotFoundError)


def document_to_images(content: bytes, dpi: int, max_pages: int) -> List[Tuple[int, Image.Image]]:
    """Split a PDF or a single image into (page_number, image) pairs, 1-based."""
    if content.startswith(b"%PDF"):
        images = convert_from_bytes(content, dpi=dpi, first_page=1, last_page=max_pages)
        if not images:
            raise ValueError("PDF has no pages")
        return [(idx + 1, img) for idx, img in enumerate(images)]

    image = Image.open(io.BytesIO(content))
    image.load()
    return [(1, image.convert("RGB"))]


def recognize_page(image: Image.Image, lang: str, config: str) -> str:
    return pytesseract.image_to_string(image, lang=lang, config=config).strip()


class TesseractOcrProvider(OcrProvider):
    """Runs Tesseract in-process on documents fetched from storage."""

    name = "tesseract"

    def __init__(
        self,
        document_loader: Optional[DocumentLoader] = None,
        languages: str = "eng",
        dpi: int = 200,
        max_pages: int = 10,
        oem: int = 3,
        psm: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._document_loader = document_loader
        self._languages = languages
        self._dpi = dpi
        self._max_pages = max_pages
        self._config = f"--oem {oem} --psm {psm}"
        self._transport = transport

    async def _load(self, source_reference: str) -> bytes:
        if source_reference.startswith(("http://", "https://")):
            try:
                async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                    response = await client.get(source_reference)
                    response.raise_for_status()
            except httpx.HTTPError as exc:
                raise OcrProviderError(f"Could not download document: {exc}") from exc
            return response.content

        if self._document_loader is None:
            raise OcrProviderError(f"Cannot load {source_reference}: no document loader")
        try:
            return await run_in_threadpool(self._document_loader, source_reference)
        except Exception as exc:
            raise OcrProviderError(f"Could not load document: {exc}") from exc

    async def extract_text(
        self,
        source_reference: str,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> OcrResult:
        content = await self._load(source_reference)
        if progress_cb:
            progress_cb(20)

        try:
            pages = await run_in_threadpool(document_to_images, content, self._dpi, self._max_pages)
        except _RENDER_ERRORS as exc:
            raise OcrProviderError(f"Could not read document: {exc}") from exc
        except ValueError as exc:
            raise OcrProviderError(str(exc)) from exc

        texts = []
        for done, (page_num, image) in enumerate(pages, start=1):
            try:
                text = await run_in_threadpool(recognize_page, image, self._languages, self._config)
            except _TESSERACT_ERRORS as exc:
                raise OcrProviderError(f"Tesseract failed on page {page_num}: {exc}") from exc
            texts.append(text)
            if progress_cb:
                progress_cb(20 + int(75 * done / len(pages)))

        logger.debug("Tesseract read %d page(s) from %s", len(pages), source_reference)
        return OcrResult(text="\n\n".join(t for t in texts if t), page_count=len(pages))
