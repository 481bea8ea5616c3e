"""
Remote Service Client - contract for the AI and browser rendering calls the wizard makes
The default implementation talks to the edge proxy over HTTP.
"""
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import RemoteError
from ..schemas import ExtractedProduct, SEOOptimization, UploadedImage
from .text_utils import parse_json_reply, strip_html

logger = logging.getLogger(__name__)

# Page text sent to the model is truncated to keep the prompt within context
PAGE_CONTENT_LIMIT = 4000

EXTRACTION_PROMPT = """Extract product information from this webpage content and format it for an eBay listing:

Content: "{content}"

Please extract and return ONLY a JSON object with these fields:
{{
  "title": "Product title (50-80 characters, eBay optimized)",
  "description": "Detailed product description in HTML format with bullet points and key features",
  "features": ["Key feature", "..."],
  "brand": "Brand if found",
  "price": "Price if found"
}}"""

SEO_PROMPT = """Optimize the following eBay listing for SEO and buyer appeal:

Title: {title}
Description: {description}

Please provide:
1. 5-10 relevant keywords
2. 3-6 SEO-friendly highlight bullet points
3. A short explanation of the choices
{web_context}
Return ONLY a JSON object:
{{"keywords": ["..."], "highlights": ["..."], "explanation": "..."}}"""

WEB_CONTEXT_HINT = "Use what you know about current marketplace search trends for similar products.\n"

ENHANCE_PROMPT = """Enhance this product description for an eBay listing. Create compelling, SEO-optimized copy in HTML format.

Key requirements:
- Use HTML tags for formatting (p, strong, ul, li, etc.)
- For features with colons (like "Color: Red"), wrap the text before the colon in <strong> tags
- Make it scan-friendly with bullet points
- Include benefit-focused language
- Optimize for eBay search

Original description: "{description}"

Return clean HTML that's ready to use in an eBay listing."""


class RemoteServiceClient(ABC):
    """Calls to the external AI-completion and browser-rendering services"""

    @abstractmethod
    async def extract_product_data(self, url: str) -> ExtractedProduct:
        """Best-effort structured extraction from a product page; every field may be absent"""
        pass

    @abstractmethod
    async def optimize_seo(
        self,
        title: str,
        plain_text_description: str,
        use_web_context: bool = True
    ) -> SEOOptimization:
        """Keyword and highlight suggestions for a listing"""
        pass

    @abstractmethod
    async def enhance_description(self, plain_text_description: str) -> str:
        """Rewrite a description as marketplace-ready HTML copy"""
        pass

    @abstractmethod
    async def upload_image(self, file_bytes: bytes, content_type: str = "image/png") -> UploadedImage:
        """Store an image and return its public URL"""
        pass

    @abstractmethod
    async def take_screenshot(self, url: str) -> bytes:
        pass

    @abstractmethod
    async def scrape_content(self, url: str, selector: str) -> Any:
        pass

    @abstractmethod
    async def extract_links(self, url: str) -> List[str]:
        pass

    @abstractmethod
    async def extract_page_content(self, url: str) -> str:
        pass


class ProxyRemoteServiceClient(RemoteServiceClient):
    """RemoteServiceClient over the edge proxy's /api/* endpoints"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            base_url: Proxy root, e.g. https://listings.example.com
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured client (tests pass one with a mock transport)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = http_client

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(f"{self.base_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            logger.warning(f"Request to {path} timed out")
            raise RemoteError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"Request to {path} failed: {e}")
            raise RemoteError(f"Request to {path} failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message") or message
            logger.warning(f"Request to {path} returned {response.status_code}: {message}")
            raise RemoteError(message)
        return response

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._post(path, payload)
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON from {path}") from e
        if not isinstance(data, dict) or not data.get("success", False):
            error = data.get("error") if isinstance(data, dict) else None
            raise RemoteError(error or f"Request to {path} was not successful")
        return data

    async def _llm(self, prompt: str, max_tokens: int = 500) -> str:
        data = await self._post_json("/api/llm", {"prompt": prompt, "maxTokens": max_tokens})
        return str(data.get("result") or "")

    async def extract_product_data(self, url: str) -> ExtractedProduct:
        page = await self.extract_page_content(url)
        content = strip_html(page)[:PAGE_CONTENT_LIMIT]
        reply = await self._llm(EXTRACTION_PROMPT.format(content=content), max_tokens=1000)

        data = parse_json_reply(reply)
        if data is None:
            logger.info(f"Extraction reply for {url} was not JSON, keeping it as the description")
            return ExtractedProduct(description=reply)
        try:
            return ExtractedProduct.model_validate(data)
        except (TypeError, PydanticValidationError) as e:
            logger.warning(f"Extraction reply for {url} had an unexpected shape: {e}")
            raise RemoteError("Product extraction returned an unreadable response") from e

    async def optimize_seo(
        self,
        title: str,
        plain_text_description: str,
        use_web_context: bool = True
    ) -> SEOOptimization:
        prompt = SEO_PROMPT.format(
            title=title,
            description=plain_text_description,
            web_context=WEB_CONTEXT_HINT if use_web_context else "",
        )
        reply = await self._llm(prompt, max_tokens=800)
        data = parse_json_reply(reply)
        if data is None:
            raise RemoteError("SEO optimization returned an unreadable response")
        try:
            return SEOOptimization.model_validate(data)
        except (TypeError, PydanticValidationError) as e:
            logger.warning(f"SEO reply had an unexpected shape: {e}")
            raise RemoteError("SEO optimization returned an unreadable response") from e

    async def enhance_description(self, plain_text_description: str) -> str:
        reply = await self._llm(ENHANCE_PROMPT.format(description=plain_text_description), max_tokens=1000)
        if not reply.strip():
            raise RemoteError("Description enhancement returned no text")
        return reply.strip()

    async def upload_image(self, file_bytes: bytes, content_type: str = "image/png") -> UploadedImage:
        payload = {
            "data": base64.b64encode(file_bytes).decode("ascii"),
            "contentType": content_type,
        }
        data = await self._post_json("/api/upload-image", payload)
        if not data.get("url"):
            raise RemoteError("Image upload returned no URL")
        return UploadedImage(url=data["url"])

    async def take_screenshot(self, url: str) -> bytes:
        response = await self._post("/api/screenshot", {"url": url, "options": {}})
        return response.content

    async def scrape_content(self, url: str, selector: str) -> Any:
        data = await self._post_json("/api/scrape", {"url": url, "selector": selector})
        return data.get("content")

    async def extract_links(self, url: str) -> List[str]:
        data = await self._post_json("/api/extract-links", {"url": url})
        return data.get("links") or []

    async def extract_page_content(self, url: str) -> str:
        data = await self._post_json("/api/extract-content", {"url": url})
        return data.get("content") or ""


def get_remote_client() -> RemoteServiceClient:
    """Remote client pointed at the configured proxy"""
    from ..config import config

    return ProxyRemoteServiceClient(config.PROXY_BASE_URL, timeout=config.REMOTE_TIMEOUT_SECONDS)
