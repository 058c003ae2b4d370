import asyncio
from typing import Any, Protocol

from google import genai
from google.genai import types
from loguru import logger

from app.core.config import settings
from app.models.news import GroundedResponse, GroundingCitation


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        grounding_enabled: bool = False,
        system_instruction: str | None = None,
        temperature: float = 0.5,
    ) -> GroundedResponse: ...


class GeminiService:
    def __init__(self, model: str = settings.DEFAULT_GEMINI_MODEL, max_output_tokens: int = 2000):
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.client = None
        if api_key := settings.GEMINI_API_KEY:
            try:
                self.client = genai.Client(api_key=api_key)
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini client: {e}")
        else:
            logger.warning("GEMINI_API_KEY not set. Profile extraction and news search will be disabled.")

    def generate_content(
        self,
        prompt: str,
        grounding_enabled: bool = False,
        system_instruction: str | None = None,
        temperature: float = 0.5,
    ) -> GroundedResponse:
        """
        Run a single generation, optionally grounded on Google Search.

        Raises:
            RuntimeError: if the client is not configured
            google.genai.errors.APIError: on API failures
        """
        if not self.client:
            raise RuntimeError("Gemini client not initialized")

        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=self.max_output_tokens,
            system_instruction=system_instruction,
            tools=[types.Tool(google_search=types.GoogleSearch())] if grounding_enabled else None,
        )
        response = self.client.models.generate_content(model=self.model, contents=prompt, config=config)
        return GroundedResponse(
            text=(response.text or "").strip(),
            grounding_citations=self._extract_citations(response),
        )

    async def generate(
        self,
        prompt: str,
        grounding_enabled: bool = False,
        system_instruction: str | None = None,
        temperature: float = 0.5,
    ) -> GroundedResponse:
        """Async wrapper to avoid blocking the event loop during network calls."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.generate_content(prompt, grounding_enabled, system_instruction, temperature)
        )

    @staticmethod
    def _extract_citations(response: Any) -> list[GroundingCitation]:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        if not metadata:
            return []

        chunks = getattr(metadata, "grounding_chunks", None) or []

        # Web chunks carry no text of their own; borrow the first answer segment they support
        snippets: dict[int, str] = {}
        for support in getattr(metadata, "grounding_supports", None) or []:
            segment = getattr(support, "segment", None)
            text = getattr(segment, "text", None) if segment else None
            if not text:
                continue
            for idx in getattr(support, "grounding_chunk_indices", None) or []:
                snippets.setdefault(idx, text)

        citations = []
        for idx, chunk in enumerate(chunks):
            web = getattr(chunk, "web", None)
            if not web or not getattr(web, "uri", None):
                continue
            citations.append(
                GroundingCitation(title=web.title or "Untitled", uri=web.uri, snippet=snippets.get(idx, ""))
            )
        return citations


gemini_service = GeminiService()
