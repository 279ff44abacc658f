"""
Google Gemini oracle - the single outbound call every contract goes through.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from ..config.settings import settings
from ..errors import GenerationFailure

logger = logging.getLogger(__name__)


class ImageContent:
    """Inline JPEG attachment sent in the same request as the prompt."""
    def __init__(self, data: bytes, mime_type: str = "image/jpeg"):
        self.data = data
        self.mime_type = mime_type

    def to_part(self) -> types.Part:
        return types.Part.from_bytes(data=self.data, mime_type=self.mime_type)

    def __repr__(self):
        return f"ImageContent({self.mime_type}, {len(self.data)} bytes)"


class Oracle(ABC):
    """Structured-generation boundary: prompt parts + response schema in, raw JSON text out."""

    @abstractmethod
    async def generate(
        self,
        parts: List[Any],
        response_schema: Dict[str, Any],
        system_instruction: str
    ) -> str:
        ...


class GeminiOracle(Oracle):
    """
    Calls Gemini in JSON mode.

    Every request is deterministic (temperature 0.0), turns extended
    reasoning off (thinking budget 0) and declares `application/json`
    with the caller's response schema.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        self.model_name = model_name or settings.GEMINI_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT
        self.semaphore = asyncio.Semaphore(settings.MAX_WORKERS)
        self.api_key = api_key or settings.LLM_API_KEY
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        # Lazy; settings.validate() checks the key at startup
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_config(self, response_schema: Dict[str, Any], system_instruction: str) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=settings.LLM_TEMPERATURE,
            response_mime_type="application/json",
            response_schema=response_schema,
            thinking_config=types.ThinkingConfig(thinking_budget=settings.LLM_THINKING_BUDGET)
        )

    async def generate(
        self,
        parts: List[Any],
        response_schema: Dict[str, Any],
        system_instruction: str
    ) -> str:
        """
        Send one request and return the response text.

        Args:
            parts: Prompt strings and ImageContent attachments, in order
            response_schema: Gemini schema the reply must match
            system_instruction: Shared policy directive

        Returns:
            Raw response text (expected to be JSON)

        Raises:
            GenerationFailure: On transport errors, timeouts or blocked responses
        """
        content = [p.to_part() if isinstance(p, ImageContent) else p for p in parts]

        try:
            config = self.build_config(response_schema, system_instruction)
            async with self.semaphore:
                response = await asyncio.wait_for(
                    asyncio.to_thread(
                        lambda: self.client.models.generate_content(
                            model=self.model_name,
                            contents=content,
                            config=config
                        )
                    ),
                    timeout=self.timeout
                )
            return response.text or ""

        except asyncio.TimeoutError:
            logger.error(f"⚠️  Gemini call timed out after {self.timeout}s")
            raise GenerationFailure(f"Oracle call timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"Error sending request to Gemini: {e}", exc_info=True)
            raise GenerationFailure(f"Oracle call failed: {e}") from e
