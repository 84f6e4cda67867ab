"""OCR provider interface, the hosted Mistral provider and the provider factory."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

# Progress callbacks receive a percentage (0-100)
ProgressCallback = Callable[[int], None]

# Turns a storage path into a URL the provider can fetch
UrlResolver = Callable[[str], str]


class OcrProviderError(Exception):
    """Raised when the OCR provider cannot extract text from a document."""


@dataclass
class OcrResult:
    text: str
    page_count: int = 0


class OcrProvider(ABC):
    """Abstract base class for OCR backends.

    The provider is only given the job's source reference; fetching and
    interpreting the document is its own business.
    """

    name: str = "base"

    @abstractmethod
    async def extract_text(
        self,
        source_reference: str,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> OcrResult:
        """Run OCR on the referenced document. Raises OcrProviderError."""
        ...


class MistralOcrProvider(OcrProvider):
    """Sends documents to the Mistral OCR endpoint by URL."""

    name = "mistral"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.mistral.ai/v1",
        model: str = "mistral-ocr-latest",
        url_resolver: Optional[UrlResolver] = None,
        timeout_seconds: float = 90.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._endpoint = f"{api_url.rstrip('/')}/ocr"
        self._model = model
        self._url_resolver = url_resolver
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def _document_url(self, source_reference: str) -> str:
        if source_reference.startswith(("http://", "https://")):
            return source_reference
        if self._url_resolver is None:
            raise OcrProviderError(f"Cannot resolve a URL for {source_reference}")
        try:
            return await run_in_threadpool(self._url_resolver, source_reference)
        except Exception as exc:
            raise OcrProviderError(f"Could not resolve document URL: {exc}") from exc

    async def extract_text(
        self,
        source_reference: str,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> OcrResult:
        document_url = await self._document_url(source_reference)
        if progress_cb:
            progress_cb(25)

        payload = {
            "model": self._model,
            "document": {"type": "document_url", "document_url": document_url},
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise OcrProviderError("OCR provider request timed out") from exc
        except httpx.HTTPError as exc:
            raise OcrProviderError(f"OCR provider unreachable: {exc}") from exc

        if response.status_code != 200:
            raise OcrProviderError(
                f"OCR provider returned {response.status_code}: {response.text[:200]}"
            )

        if progress_cb:
            progress_cb(90)

        pages = response.json().get("pages", [])
        pages = sorted(pages, key=lambda p: p.get("index", 0))
        text = "\n\n".join(p.get("markdown", "") for p in pages).strip()
        logger.debug("Mistral OCR returned %d page(s) for %s", len(pages), source_reference)
        return OcrResult(text=text, page_count=len(pages))


def build_provider(
    settings,
    url_resolver: Optional[UrlResolver] = None,
    document_loader: Optional[Callable[[str], bytes]] = None,
) -> Optional[OcrProvider]:
    """Create the provider named by settings.ocr_provider.

    Returns None when the provider is known but not configured; jobs then
    fail with a clear message instead of the service refusing to start.
    """
    provider = settings.ocr_provider.strip().lower()
    if provider == "mistral":
        if not settings.mistral_api_key:
            logger.warning("OCR provider 'mistral' selected but MISTRAL_API_KEY is not set")
            return None
        return MistralOcrProvider(
            api_key=settings.mistral_api_key,
            api_url=settings.mistral_api_url,
            model=settings.mistral_ocr_model,
            url_resolver=url_resolver,
            timeout_seconds=settings.ocr_request_timeout_seconds,
        )
    if provider == "tesseract":
        from app.ocr.tesseract import TesseractOcrProvider

        return TesseractOcrProvider(
            document_loader=document_loader,
            languages=settings.tesseract_languages,
            dpi=settings.tesseract_dpi,
            max_pages=settings.max_pages,
            oem=settings.tesseract_oem,
            psm=settings.tesseract_psm,
        )
    raise ValueError(f"Unknown OCR provider '{settings.ocr_provider}'")
