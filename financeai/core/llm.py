import logging
import re
import json
from typing import Optional, Dict, Any

import httpx

from financeai.core.config import Settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Failure talking to the hosted text-generation API.

    The message always names the cause (status code, timeout, transport) so
    callers can classify it by its text.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMConfigurationError(LLMError):
    """Missing or rejected credentials / provider settings."""


class LLMService:
    """Centralized client for the hosted Large Language Model API."""

    SUPPORTED_PROVIDERS = ("gemini", "groq")

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        base_url: str,
        temperature: float = 0.7,
        max_output_tokens: int = 1500,
        sanitize: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if provider not in self.SUPPORTED_PROVIDERS:
            raise LLMConfigurationError(f"Unsupported LLM provider: {provider}")
        if not api_key:
            raise LLMConfigurationError(f"API key for LLM provider '{provider}' is not configured")

        self.provider = provider
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.sanitize = sanitize
        self._transport = transport

        # PII patterns scrubbed before content leaves the process
        self._pii_patterns = [
            (re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'), '<EMAIL>'),
            (re.compile(r'\b(?:\d[ -]?){13,19}\b'), '<CARD>'),
            (re.compile(r'\b\d{3}-\d{2}-\d{4}\b'), '<SSN>'),
            (re.compile(r'(?:\+?1[ .-]?)?\(?\d{3}\)?[ .-]\d{3}[ .-]\d{4}\b'), '<PHONE>'),
        ]

    def _sanitize_for_external(self, text: str) -> str:
        """PII scrub before sending to the third-party LLM API."""
        if not text or not self.sanitize:
            return text
        for pattern, label in self._pii_patterns:
            text = pattern.sub(label, text)
        return text

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    async def generate_response(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        response_format: Optional[str] = None,
        timeout: float = 30.0
    ) -> str:
        """Generate a text completion. Raises LLMError on any failure."""
        sanitized_prompt = self._sanitize_for_external(prompt)
        temperature = self.temperature if temperature is None else temperature

        if self.provider == "groq":
            return await self._call_groq(sanitized_prompt, system_prompt, temperature, response_format, timeout)
        return await self._call_gemini(sanitized_prompt, system_prompt, temperature, response_format, timeout)

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            async with self._client(timeout) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.warning(f"{self.provider} request timed out after {timeout}s")
            raise LLMError(f"{self.provider} request timeout after {timeout}s")
        except httpx.TransportError as e:
            logger.warning(f"{self.provider} connection error: {type(e).__name__}: {e}")
            raise LLMError(f"{self.provider} network error: {type(e).__name__}")

        if resp.status_code != 200:
            self._raise_for_status(resp)

        try:
            return resp.json()
        except ValueError:
            raise LLMError(f"{self.provider} returned an invalid JSON body", status_code=resp.status_code)

    def _raise_for_status(self, resp: httpx.Response) -> None:
        code = resp.status_code
        logger.error(f"{self.provider} API Error ({code}): {resp.text[:200]}")

        if code == 429:
            raise LLMError(f"{self.provider} rate limit exceeded (429): quota exhausted", status_code=code)
        if code in (401, 403):
            raise LLMConfigurationError(
                f"{self.provider} authentication failed ({code}): check the API key", status_code=code
            )
        if code == 400:
            raise LLMError(f"{self.provider} rejected the request as invalid (400)", status_code=code)
        if code >= 500:
            raise LLMError(f"{self.provider} service unavailable ({code})", status_code=code)
        raise LLMError(f"{self.provider} API error ({code})", status_code=code)

    async def _call_gemini(
        self,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
        response_format: Optional[str],
        timeout: float
    ) -> str:
        url = f"{self.base_url}/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json"
        }
        generation_config = {
            "temperature": temperature,
            "topP": 0.8,
            "topK": 40,
            "maxOutputTokens": self.max_output_tokens,
        }
        if response_format == "json_object":
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        data = await self._post(url, headers, payload, timeout)

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise LLMError(f"gemini returned an invalid response: {reason}")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise LLMError("gemini returned an empty response")
        return text

    async def _call_groq(
        self,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
        response_format: Optional[str],
        timeout: float
    ) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": self.max_output_tokens,
        }
        if response_format == "json_object":
            payload["response_format"] = {"type": "json_object"}

        data = await self._post(self.base_url, headers, payload, timeout)
        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError):
            raise LLMError("groq returned an invalid response: missing choices")
        if not content:
            raise LLMError("groq returned an empty response")
        return content

    async def generate_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = "You are a financial intelligence engine. Always output valid JSON.",
        temperature: float = 0.2,
        timeout: float = 30.0
    ) -> Dict[str, Any]:
        """Method specifically for JSON-structured responses."""
        content = await self.generate_response(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            response_format="json_object",
            timeout=timeout
        )
        return parse_json_payload(content)

    async def health_check(self) -> bool:
        try:
            await self.generate_response("Hello", timeout=10.0)
            return True
        except LLMError as e:
            logger.warning(f"LLM health check failed: {e}")
            return False


def parse_json_payload(content: str) -> Dict[str, Any]:
    """Parse a JSON object out of a completion, tolerating markdown code fences."""
    text = content.strip()
    try:
        if "```json" in text:
            text = text.split("```json")[1].split("```")[0].strip()
        elif "```" in text:
            text = text.split("```")[1].split("```")[0].strip()
        data = json.loads(text)
    except (json.JSONDecodeError, IndexError) as e:
        logger.error(f"LLM JSON Decode Error: {e}. Content: {content[:100]}...")
        raise LLMError(f"Invalid JSON in LLM response: {e}")

    if not isinstance(data, dict):
        raise LLMError("Invalid JSON in LLM response: expected an object")
    return data


def create_llm_service(settings: Settings) -> LLMService:
    """Build the LLM client once at startup; raises LLMConfigurationError when unusable."""
    base_url = settings.GROQ_URL if settings.LLM_PROVIDER == "groq" else settings.GEMINI_URL
    service = LLMService(
        provider=settings.LLM_PROVIDER,
        api_key=settings.llm_api_key or "",
        model=settings.llm_model,
        base_url=base_url,
        temperature=settings.LLM_TEMPERATURE,
        max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
        sanitize=settings.SANITIZE_LLM_INPUT,
    )
    logger.info(f"LLMService initialized: {service.provider}/{service.model}")
    return service
