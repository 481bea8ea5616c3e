"""
Browser Provider - headless page rendering through the Cloudflare Browser Rendering REST API
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class BrowserProviderError(Exception):
    """Raised when the rendering service rejects a request or cannot be reached"""
    pass


class CloudflareBrowserProvider:
    """
    Screenshots, scraping, link and content extraction of arbitrary URLs

    All calls POST to {base_url}/accounts/{account_id}/browser-rendering/{action}
    with a bearer token.
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            account_id: Cloudflare account ID
            api_token: API token with Browser Rendering permission
            base_url: API root
            timeout: Request timeout in seconds
            http_client: Optional preconfigured client (tests pass one with a mock transport)
        """
        self.account_id = account_id
        self.api_token = api_token
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = http_client

    def _endpoint(self, action: str) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/browser-rendering/{action}"

    async def _post(self, action: str, payload: Dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_token}"}
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(self._endpoint(action), json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Browser rendering {action} request failed: {e}")
            raise BrowserProviderError(f"Browser rendering request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code >= 400:
            logger.warning(f"Browser rendering {action} returned HTTP {response.status_code}")
            raise BrowserProviderError(
                f"Browser rendering {action} failed with HTTP {response.status_code}: {response.text[:200]}"
            )
        return response

    async def _post_json(self, action: str, payload: Dict[str, Any]) -> Any:
        response = await self._post(action, payload)
        try:
            data = response.json()
        except ValueError as e:
            raise BrowserProviderError(f"Browser rendering {action} returned invalid JSON") from e
        if not data.get("success", False):
            errors = data.get("errors") or []
            message = errors[0].get("message") if errors and isinstance(errors[0], dict) else "unknown error"
            raise BrowserProviderError(f"Browser rendering {action} failed: {message}")
        return data.get("result")

    async def screenshot(self, url: str, options: Optional[Dict[str, Any]] = None) -> bytes:
        """
        Capture a PNG screenshot of a page

        Args:
            url: Page URL
            options: Screenshot options, merged over {type: png, fullPage: false}

        Returns:
            PNG bytes
        """
        screenshot_options = {"type": "png", "fullPage": False}
        screenshot_options.update(options or {})
        response = await self._post("screenshot", {"url": url, "screenshotOptions": screenshot_options})
        return response.content

    async def scrape(self, url: str, selector: str) -> List[Dict[str, Any]]:
        """Elements matching a CSS selector, with their text and HTML"""
        result = await self._post_json("scrape", {"url": url, "elements": [{"selector": selector}]})
        return result or []

    async def links(self, url: str) -> List[str]:
        """All link targets on a page"""
        result = await self._post_json("links", {"url": url})
        return result or []

    async def content(self, url: str) -> str:
        """Rendered HTML of a page"""
        result = await self._post_json("content", {"url": url})
        return result or ""
