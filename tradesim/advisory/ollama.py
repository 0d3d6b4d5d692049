"""Ollama-backed advisor for local LLM recommendations."""

import logging
import time

import httpx

from tradesim.advisory.gateway import AdvisoryRequest
from tradesim.advisory.models import Recommendation
from tradesim.advisory.prompts import SYSTEM_PROMPT, build_analysis_prompt

logger = logging.getLogger(__name__)


class OllamaAdvisor:
    """Advisor that asks a local Ollama server for a JSON recommendation."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "mistral",
        timeout: float = 30.0,
        temperature: float = 0.2,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._client = client

        self.total_tokens = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Shared AsyncClient, recreated after close()."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def is_available(self) -> bool:
        """True when the Ollama server answers on /api/tags."""
        try:
            client = await self._get_client()
            response = await client.get(f"{self.base_url}/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def analyze(self, request: AdvisoryRequest) -> Recommendation:
        """
        Ask the model for a recommendation.

        Args:
            request: Analysis inputs for the current bar

        Returns:
            Parsed Recommendation (bounds are validated by the gateway)

        Raises:
            httpx.HTTPError: Transport or HTTP status failure
            AdvisoryUnavailable: Response is not a valid recommendation
        """
        start_time = time.time()
        client = await self._get_client()

        try:
            response = await client.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_analysis_prompt(request)},
                    ],
                    "format": "json",
                    "stream": False,
                    "options": {"temperature": self.temperature},
                },
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning(f"Advisory request for {request.symbol} timed out ({self.model})")
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"Advisory HTTP error for {request.symbol}: {e}")
            raise

        data = response.json()
        text = data.get("message", {}).get("content", "")

        tokens = data.get("prompt_eval_count", 0) + data.get("eval_count", 0)
        self.total_tokens += tokens
        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"{self.model} answered for {request.symbol}: {tokens} tokens in {elapsed_ms:.0f}ms"
        )

        return Recommendation.from_text(text)
