"""
Edge proxy API routes
AI completion, image generation, browser rendering and image upload behind one
JSON-over-POST surface: every response is {success, ...} except /api/screenshot,
which returns the PNG bytes.
"""
import base64
import binascii
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from .dependencies import get_ai_provider, get_browser_provider, get_storage_provider
from .services.ai_provider import AIProviderError, LiteLLMProvider
from .services.browser_provider import BrowserProviderError, CloudflareBrowserProvider
from .services.storage_provider import StorageProvider, store_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])

# Included last so that only paths no other router claims reach it
fallback_router = APIRouter(prefix="/api", tags=["proxy"])


class ProxyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LLMRequest(ProxyRequest):
    prompt: str
    model: Optional[str] = None
    max_tokens: int = Field(500, alias="maxTokens", gt=0)


class GenerateImageRequest(ProxyRequest):
    prompt: str
    steps: int = Field(20, gt=0)


class ScreenshotRequest(ProxyRequest):
    url: str
    options: Dict[str, Any] = Field(default_factory=dict)


class ScrapeRequest(ProxyRequest):
    url: str
    selector: str


class UrlRequest(ProxyRequest):
    url: str


class ExtractFileDataRequest(ProxyRequest):
    file_content: str = Field(..., alias="fileContent")
    file_type: str = Field(..., alias="fileType")
    prompt: Optional[str] = None


class UploadImageRequest(ProxyRequest):
    data: str
    content_type: str = Field("image/png", alias="contentType")


def _utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a Z suffix"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _failure(message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _binding_unavailable(binding: str) -> JSONResponse:
    return _failure(f"{binding} binding not available")


@router.post("/llm")
async def llm(
    request: LLMRequest,
    ai: Optional[LiteLLMProvider] = Depends(get_ai_provider)
):
    """Chat completion with the listing-writer system prompt"""
    if ai is None:
        return _binding_unavailable("AI")
    try:
        result = await ai.complete(request.prompt, model=request.model, max_tokens=request.max_tokens)
    except AIProviderError as e:
        logger.error(f"LLM request failed: {e}")
        return _failure(str(e))
    return {"success": True, "result": result}


@router.post("/generate-image")
async def generate_image(
    request: GenerateImageRequest,
    ai: Optional[LiteLLMProvider] = Depends(get_ai_provider)
):
    if ai is None:
        return _binding_unavailable("AI")
    try:
        image = await ai.generate_image(request.prompt, steps=request.steps)
    except AIProviderError as e:
        logger.error(f"Image generation failed: {e}")
        return _failure(str(e))
    return {"success": True, "image": image, "id": f"ai-image-{int(time.time() * 1000)}"}


@router.post("/screenshot")
async def screenshot(
    request: ScreenshotRequest,
    browser: Optional[CloudflareBrowserProvider] = Depends(get_browser_provider)
):
    if browser is None:
        return _binding_unavailable("Browser")
    try:
        png = await browser.screenshot(request.url, request.options)
    except BrowserProviderError as e:
        logger.error(f"Screenshot of {request.url} failed: {e}")
        return _failure(str(e))
    return Response(content=png, media_type="image/png")


@router.post("/scrape")
async def scrape(
    request: ScrapeRequest,
    browser: Optional[CloudflareBrowserProvider] = Depends(get_browser_provider)
):
    if browser is None:
        return _binding_unavailable("Browser")
    try:
        content = await browser.scrape(request.url, request.selector)
    except BrowserProviderError as e:
        logger.error(f"Scraping {request.url} failed: {e}")
        return _failure(str(e))
    return {"success": True, "content": content, "extractedAt": _utc_timestamp()}


@router.post("/extract-links")
async def extract_links(
    request: UrlRequest,
    browser: Optional[CloudflareBrowserProvider] = Depends(get_browser_provider)
):
    if browser is None:
        return _binding_unavailable("Browser")
    try:
        links = await browser.links(request.url)
    except BrowserProviderError as e:
        logger.error(f"Link extraction from {request.url} failed: {e}")
        return _failure(str(e))
    return {"success": True, "links": links, "extractedAt": _utc_timestamp()}


@router.post("/extract-content")
async def extract_content(
    request: UrlRequest,
    browser: Optional[CloudflareBrowserProvider] = Depends(get_browser_provider)
):
    if browser is None:
        return _binding_unavailable("Browser")
    try:
        content = await browser.content(request.url)
    except BrowserProviderError as e:
        logger.error(f"Content extraction from {request.url} failed: {e}")
        return _failure(str(e))
    return {"success": True, "content": content, "extractedAt": _utc_timestamp()}


@router.post("/extract-file-data")
async def extract_file_data(
    request: ExtractFileDataRequest,
    ai: Optional[LiteLLMProvider] = Depends(get_ai_provider)
):
    """Product fields from an uploaded file's text content"""
    if ai is None:
        return _binding_unavailable("AI")
    try:
        data = await ai.extract_file_data(request.file_content, request.file_type, request.prompt)
    except AIProviderError as e:
        logger.error(f"File data extraction failed: {e}")
        return _failure(str(e))
    return {"success": True, "data": data}


@router.post("/upload-image")
def upload_image(
    request: UploadImageRequest,
    storage: StorageProvider = Depends(get_storage_provider)
):
    """Store a base64-encoded image and return its public URL"""
    try:
        data = base64.b64decode(request.data, validate=True)
    except (binascii.Error, ValueError):
        return _failure("Image data is not valid base64", status.HTTP_400_BAD_REQUEST)

    try:
        url = store_image(storage, data, request.content_type)
    except ValueError as e:
        return _failure(str(e), status.HTTP_400_BAD_REQUEST)

    logger.info(f"Stored uploaded image ({len(data)} bytes) at {url}")
    return {"success": True, "url": url}


@fallback_router.options("/{path:path}", include_in_schema=False)
async def preflight(path: str):
    """Bare OPTIONS requests; CORS preflights are answered by the middleware"""
    return Response(status_code=status.HTTP_200_OK)


@fallback_router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False
)
async def endpoint_not_found(path: str, request: Request):
    logger.debug(f"No API endpoint for {request.method} /api/{path}")
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "API endpoint not found"})
