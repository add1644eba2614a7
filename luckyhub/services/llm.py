import logging
import os
import re
from typing import Callable, Optional, Protocol, Tuple

import httpx

logger = logging.getLogger("uvicorn.error")

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_API_BASE_URL = os.getenv(
    "GEMINI_API_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/models"
).rstrip("/")
GEMINI_MODELS = [
    name.strip()
    for name in os.getenv(
        "GEMINI_MODELS", "gemini-2.0-flash,gemini-1.5-flash,gemini-1.5-flash-latest"
    ).split(",")
    if name.strip()
]
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_CONNECT_TIMEOUT_SECONDS = float(os.getenv("LLM_CONNECT_TIMEOUT_SECONDS", "10"))

DEFAULT_IMAGE_MIME_TYPE = "image/png"
AI_BUSY_MESSAGE = (
    "The AI coach is busy right now (request limit reached). "
    "Please wait about a minute and try again."
)

_DATA_URI_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,")


def _http_timeout() -> httpx.Timeout:
    return httpx.Timeout(LLM_TIMEOUT_SECONDS, connect=LLM_CONNECT_TIMEOUT_SECONDS)


class LLMRequestError(RuntimeError):
    def __init__(self, provider: str, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


def strip_data_uri(image: str) -> Tuple[str, str]:
    """Split a ``data:image/...;base64,`` URI into mime type and payload.

    Anything that is not a data URI is returned untouched with the default
    mime type; the provider is the one that rejects bad image data.
    """
    match = _DATA_URI_RE.match(image or "")
    if not match:
        return DEFAULT_IMAGE_MIME_TYPE, image or ""
    return match.group(1), image[match.end():]


def is_model_not_found(exc: Exception) -> bool:
    if isinstance(exc, LLMRequestError) and exc.status_code == 404:
        return True
    text = str(exc)
    return "NOT_FOUND" in text or "is not found" in text


def generate_with_fallback(models: list[str], attempt: Callable[[str], str]) -> Optional[str]:
    """Call ``attempt`` for each model in order until one returns text.

    A not-found error moves on to the next model name. Any other error ends
    the loop, since quota or auth failures would repeat for every model.
    Returns None when nothing produced text.
    """
    for model in models:
        try:
            return attempt(model)
        except Exception as exc:
            if is_model_not_found(exc):
                logger.warning("ai_model_not_found model=%s trying_next=true", model)
                continue
            logger.error("ai_relay_error model=%s detail=%s", model, str(exc)[:500])
            return None
    logger.error("ai_relay_exhausted models=%s", ",".join(models))
    return None


def _gemini_request(
    model: str, api_key: str, prompt: str, image_b64: Optional[str], mime_type: str
) -> str:
    parts: list[dict] = [{"text": prompt}]
    if image_b64 is not None:
        parts.append({"inlineData": {"mimeType": mime_type, "data": image_b64}})
    response = httpx.post(
        f"{GEMINI_API_BASE_URL}/{model}:generateContent?key={api_key}",
        headers={"Content-Type": "application/json"},
        json={"contents": [{"parts": parts}]},
        timeout=_http_timeout(),
    )
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code if exc.response is not None else None
        detail = ""
        if exc.response is not None:
            detail = (exc.response.text or "").strip()[:500]
        raise LLMRequestError(
            provider="gemini",
            model=model,
            status_code=status,
            message=f"Gemini request failed (status={status}): {detail or 'no response body'}",
        ) from exc
    data = response.json()
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMRequestError(
            provider="gemini", model=model, message="Gemini response contained no text"
        ) from exc
    text = str(text or "").strip()
    if not text:
        raise LLMRequestError(provider="gemini", model=model, message="Gemini returned empty text")
    return text


class LLMClient(Protocol):
    def generate_text(self, prompt: str, image: Optional[str] = None) -> Optional[str]:
        ...


class GeminiClient:
    def __init__(self, api_key: str, models: list[str]) -> None:
        self.api_key = api_key
        self.models = models

    def generate_text(self, prompt: str, image: Optional[str] = None) -> Optional[str]:
        image_b64: Optional[str] = None
        mime_type = DEFAULT_IMAGE_MIME_TYPE
        if image is not None:
            mime_type, image_b64 = strip_data_uri(image)
        return generate_with_fallback(
            self.models,
            lambda model: _gemini_request(model, self.api_key, prompt, image_b64, mime_type),
        )


def get_llm_client() -> LLMClient:
    return GeminiClient(api_key=GEMINI_API_KEY, models=GEMINI_MODELS)
