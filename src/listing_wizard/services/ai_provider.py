"""
AI Provider - text and image generation through LiteLLM
"""
import logging
from typing import Any, Dict, List, Optional

import litellm

from .text_utils import parse_json_reply

logger = logging.getLogger(__name__)

LISTING_WRITER_PROMPT = (
    "You are an expert eBay listing writer. Create compelling, SEO-optimized product "
    "descriptions that highlight key features and benefits."
)

DATA_EXTRACTION_PROMPT = (
    "You are a data extraction expert. Extract structured product information from uploaded files."
)


class AIProviderError(Exception):
    """Raised when the model call fails or returns nothing usable"""
    pass


class LiteLLMProvider:
    """Chat completion and image generation via any LiteLLM-supported backend"""

    def __init__(
        self,
        model: str,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        image_model: Optional[str] = None,
        timeout: float = 30.0
    ):
        """
        Args:
            model: LiteLLM model string (e.g. 'openai/gpt-4o-mini', 'ollama/llama3.1')
            api_base: Optional custom endpoint
            api_key: Optional API key (otherwise read by LiteLLM from the environment)
            image_model: Model used for image generation
            timeout: Request timeout in seconds
        """
        self.model = model
        self.api_base = api_base
        self.api_key = api_key
        self.image_model = image_model
        self.timeout = timeout

    def _call_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"timeout": self.timeout}
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    async def complete(
        self,
        prompt: str,
        system_prompt: str = LISTING_WRITER_PROMPT,
        model: Optional[str] = None,
        max_tokens: Optional[int] = 500
    ) -> str:
        """
        Run a chat completion

        Args:
            prompt: User prompt
            system_prompt: System message
            model: Override of the configured model
            max_tokens: Completion token cap

        Returns:
            Reply text
        """
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        kwargs = self._call_kwargs()
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await litellm.acompletion(model=model or self.model, messages=messages, **kwargs)
        except Exception as e:
            logger.warning(f"LLM call to {model or self.model} failed: {e}")
            raise AIProviderError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIProviderError("Model returned an empty response")
        return content

    async def generate_image(self, prompt: str, steps: int = 20) -> Dict[str, Any]:
        """
        Generate an image from a prompt

        Returns:
            Dict with 'url' and/or 'b64_json'
        """
        if not self.image_model:
            raise AIProviderError("No image model configured")
        try:
            response = await litellm.aimage_generation(
                prompt=prompt,
                model=self.image_model,
                n=1,
                **self._call_kwargs()
            )
        except Exception as e:
            logger.warning(f"Image generation with {self.image_model} failed: {e}")
            raise AIProviderError(str(e)) from e

        if not response.data:
            raise AIProviderError("Image model returned no data")
        image = response.data[0]
        return {
            "url": getattr(image, "url", None),
            "b64_json": getattr(image, "b64_json", None),
            "steps": steps,
        }

    async def extract_file_data(self, file_content: str, file_type: str, prompt: Optional[str] = None) -> Dict[str, Any]:
        """
        Extract product information from an uploaded file's text

        Unparsable replies fall back to a generic record holding the reply text.
        """
        analysis_prompt = prompt or (
            f"Analyze this {file_type} file and extract product information including name, "
            "description, price, and category. Return as JSON."
        )
        reply = await self.complete(
            f"{analysis_prompt}\n\nFile content: {file_content}",
            system_prompt=DATA_EXTRACTION_PROMPT,
            max_tokens=None,
        )
        data = parse_json_reply(reply)
        if data is None:
            data = {
                "productName": "Extracted Product",
                "description": reply or "Product information extracted from file",
                "price": "TBD",
                "category": "General",
            }
        return data
