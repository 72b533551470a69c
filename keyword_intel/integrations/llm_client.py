"""Text-generation adapter for OpenAI-compatible endpoints and Google Gemini.

One ``LLMClient`` talks to exactly one upstream service.  OpenAI itself and
Perplexity (which exposes an OpenAI-compatible chat API) both use the
``openai`` backend with different base URLs; Gemini uses the ``gemini``
backend.  Transport failures surface as ``ProviderUnavailable`` and replies
that do not match the requested schema as ``MalformedResponse``; fallback is
the resolver's job, not the client's.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

import google.generativeai as genai
import openai
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, ValidationError

from keyword_intel.errors import MalformedResponse, ProviderUnavailable

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

BACKENDS = ("openai", "gemini")
DEFAULT_SYSTEM_PROMPT = "You are an expert SEO and keyword research strategist."
STRUCTURED_SYSTEM_PROMPT = (
    "You are an expert SEO and keyword research strategist. "
    "Respond ONLY with a single valid JSON object."
)


@dataclass
class UsageStats:
    """Tracks request and token counts for one client."""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_requests: int = 0
    failed_requests: int = 0
    started_at: float = field(default_factory=time.time)

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_requests += 1


def parse_structured(service: str, text: str, schema: type[SchemaT]) -> SchemaT:
    """Validate a model reply against *schema*.

    The reply must be one JSON object, optionally wrapped in exactly one
    fenced code block.  Anything else (prose around the JSON, several
    objects, arrays, invalid fields) raises ``MalformedResponse``.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        if len(lines) < 3 or lines[-1].strip() != "```":
            raise MalformedResponse(service, "unterminated code fence in reply")
        body = lines[1:-1]
        if any(line.strip().startswith("```") for line in body):
            raise MalformedResponse(service, "reply contains more than one code block")
        cleaned = "\n".join(body).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.debug("Unparseable reply from %s: %s", service, cleaned[:500])
        raise MalformedResponse(service, f"reply is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse(
            service, f"expected a JSON object, got {type(data).__name__}"
        )
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponse(
            service,
            f"reply failed {schema.__name__} validation "
            f"({exc.error_count()} errors): {exc.errors()[0]['msg']}",
        ) from exc


class LLMClient:
    """Async text-generation client bound to a single upstream service.

    Usage::

        client = LLMClient("perplexity", api_key="...", model="sonar",
                           base_url="https://api.perplexity.ai")
        text = await client.generate_text("Explain keyword clustering")
        payload = await client.generate_structured(prompt, SeedKeywordsPayload)
    """

    def __init__(
        self,
        service_name: str,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        backend: str = "openai",
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        timeout: float = 60.0,
    ):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown LLM backend {backend!r}; expected one of {BACKENDS}")
        self.service_name = service_name
        self._api_key = api_key or ""
        self._model = model
        self._backend = backend
        self._base_url = base_url
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout

        self._openai_client: Optional[openai.AsyncOpenAI] = None
        if self._api_key and backend == "openai":
            self._openai_client = openai.AsyncOpenAI(
                api_key=self._api_key, base_url=base_url, timeout=timeout
            )
        if self._api_key and backend == "gemini":
            genai.configure(api_key=self._api_key)

        self.usage = UsageStats()

    @property
    def configured(self) -> bool:
        """True when credentials are present; otherwise the service is mock-only."""
        return bool(self._api_key)

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: str,
        params: Optional[dict[str, Any]] = None,
    ) -> str:
        """Return the raw reply text for *prompt*.

        Recognized params: ``system_prompt``, ``max_tokens``, ``temperature``.
        """
        if not self.configured:
            raise ProviderUnavailable(self.service_name, "no API key configured")
        params = params or {}
        system_prompt = params.get("system_prompt", DEFAULT_SYSTEM_PROMPT)
        max_tokens = int(params.get("max_tokens", self._max_tokens))
        temperature = float(params.get("temperature", self._temperature))

        try:
            if self._backend == "gemini":
                text = await self._call_gemini(prompt, system_prompt, max_tokens, temperature)
            else:
                text = await self._call_openai(prompt, system_prompt, max_tokens, temperature)
        except (ProviderUnavailable, MalformedResponse):
            self.usage.failed_requests += 1
            raise
        if not text:
            self.usage.failed_requests += 1
            raise MalformedResponse(self.service_name, "empty reply")
        return text

    async def generate_structured(
        self,
        prompt: str,
        schema: type[SchemaT],
        params: Optional[dict[str, Any]] = None,
    ) -> SchemaT:
        """Generate a reply and validate it strictly against *schema*."""
        params = dict(params or {})
        params.setdefault("system_prompt", STRUCTURED_SYSTEM_PROMPT)
        raw = await self.generate_text(prompt, params)
        return parse_structured(self.service_name, raw, schema)

    async def health_check(self) -> dict[str, Any]:
        """Ping the provider with a trivial prompt."""
        if not self.configured:
            return {
                "status": "healthy",
                "mode": "mock",
                "message": f"{self.service_name} credentials not configured; serving mock data",
            }
        started = time.monotonic()
        reply = await self.generate_text(
            'Reply with just "OK" to confirm the API is working.',
            {"max_tokens": 10, "temperature": 0.0},
        )
        return {
            "status": "healthy",
            "mode": "live",
            "model": self._model,
            "response_length": len(reply),
            "latency_ms": round((time.monotonic() - started) * 1000),
        }

    def get_usage_summary(self) -> dict[str, Any]:
        return {
            "service": self.service_name,
            "backend": self._backend,
            "model": self._model,
            "total_requests": self.usage.total_requests,
            "failed_requests": self.usage.failed_requests,
            "total_input_tokens": self.usage.total_input_tokens,
            "total_output_tokens": self.usage.total_output_tokens,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _call_openai(
        self, prompt: str, system_prompt: str,
        max_tokens: int, temperature: float
    ) -> str:
        """Call an OpenAI-compatible Chat Completions API."""
        try:
            response = await self._openai_client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APIError as exc:
            logger.warning("%s call failed: %s", self.service_name, exc)
            raise ProviderUnavailable(self.service_name, str(exc)) from exc

        if not response.choices:
            raise MalformedResponse(self.service_name, "reply has no choices")
        choice = response.choices[0].message.content or ""
        usage = response.usage
        if usage:
            self.usage.add_usage(usage.prompt_tokens, usage.completion_tokens)
            logger.info(
                "%s call: %d in / %d out tokens",
                self.service_name, usage.prompt_tokens, usage.completion_tokens,
            )
        else:
            self.usage.add_usage(0, 0)
        return choice.strip()

    async def _call_gemini(
        self, prompt: str, system_prompt: str,
        max_tokens: int, temperature: float
    ) -> str:
        """Call Google Gemini API."""
        model = genai.GenerativeModel(
            model_name=self._model,
            system_instruction=system_prompt,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        # Run synchronous Gemini call in a thread to keep async interface
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None, model.generate_content, prompt
            )
        except google_exceptions.GoogleAPIError as exc:
            logger.warning("%s call failed: %s", self.service_name, exc)
            raise ProviderUnavailable(self.service_name, str(exc)) from exc

        try:
            text = response.text or ""
        except ValueError as exc:
            # Raised when the candidate was blocked or carries no text part.
            raise MalformedResponse(self.service_name, str(exc)) from exc
        self.usage.add_usage(0, 0)
        logger.info("%s call completed (len=%d)", self.service_name, len(text))
        return text.strip()
