"""AI collaborator: audio analysis and cover image generation via OpenRouter chat completions."""

import base64
import json
import logging
import secrets
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from app.core.errors import UpstreamFailure

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an art critic. Listen to the audio and write a short analysis:

1. LYRICS (1 paragraph): What is being sung or said?

2. VISUAL IMAGE (2-3 paragraphs): Describe concrete imagery for an album cover. Which scenes, characters, objects, landscapes and colors convey the mood of this track? Be specific: not "sadness" but "a lone figure on an empty pier in the fog".

Be concise and vivid."""

PLACEHOLDER_ANALYSIS = """TRANSCRIPTION: This is a placeholder transcription.

EMOTIONAL PALETTE: Energetic, driving, upbeat

VIBE: Contemporary, youthful, dynamic

STYLE: Electronic/Pop

VISUAL ASSOCIATIONS: Neon lights, a city at night, motion

COMMERCIAL POTENTIAL: A hit in the style of modern electronic music"""

COVER_PROMPT_ANALYSIS_CHARS = 300


def build_cover_prompt(analysis_text: str) -> str:
    return (
        "Vinyl record cardboard sleeve cover art. Square format, just the cover filling the "
        "entire frame, no background, no borders. The artwork shows a vivid scene that captures "
        "the song's emotion and style. NO TEXT, NO LETTERS, NO WORDS on the cover. "
        f"Visual imagery based on: {analysis_text[:COVER_PROMPT_ANALYSIS_CHARS]}"
    )


def fallback_cover_url(prompt: str, settings: "Settings") -> str:
    """Placeholder image generator URL with a random seed (no API key needed)."""
    seed = secrets.token_hex(8)
    return (
        f"{settings.COVER_FALLBACK_BASE_URL}/{quote(prompt, safe='')}"
        f"?width=1024&height=1024&seed={seed}&nologo=true"
    )


def is_configured(settings: "Settings") -> bool:
    if settings.OPENROUTER_API_KEY is None:
        return False
    return bool(settings.OPENROUTER_API_KEY.get_secret_value().strip())


async def _chat_completion(payload: dict[str, Any], settings: "Settings") -> dict[str, Any]:
    """POST to chat/completions and return choices[0].message. Raises UpstreamFailure."""
    if not is_configured(settings):
        raise UpstreamFailure("OPENROUTER_API_KEY is not configured.")

    url = f"{settings.OPENROUTER_BASE_URL}/chat/completions"
    headers = {
        "Authorization": f"Bearer {settings.OPENROUTER_API_KEY.get_secret_value()}",
        "Content-Type": "application/json",
        "X-Title": "Sleeve",
    }
    timeout = httpx.Timeout(settings.AI_REQUEST_TIMEOUT_SEC)
    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as e:
        raise UpstreamFailure("AI request timed out.", {"model": payload.get("model")}) from e
    except httpx.HTTPError as e:
        raise UpstreamFailure("AI service is unreachable.", {"model": payload.get("model")}) from e
    elapsed = time.perf_counter() - start

    logger.info(
        "AI request completed",
        extra={
            "llm_latency_seconds": elapsed,
            "model": payload.get("model"),
            "http_status": response.status_code,
        },
    )
    if response.status_code != 200:
        raise UpstreamFailure(
            f"AI service returned status {response.status_code}.",
            {"status_code": response.status_code},
        )
    try:
        body = response.json()
        message = body["choices"][0]["message"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
        raise UpstreamFailure("AI response is missing choices[0].message.") from e
    if not isinstance(message, dict):
        raise UpstreamFailure("AI response choices[0].message is not an object.")
    return message


async def analyze_audio(
    audio: bytes,
    mime_type: str,
    filename: str,
    settings: "Settings",
) -> str:
    """Send audio as a data-URI file part with the analysis prompt; return the text reply."""
    encoded = base64.b64encode(audio).decode("ascii")
    payload = {
        "model": settings.OPENROUTER_ANALYSIS_MODEL,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": ANALYSIS_PROMPT},
                    {
                        "type": "file",
                        "file": {
                            "filename": filename,
                            "file_data": f"data:{mime_type};base64,{encoded}",
                        },
                    },
                ],
            }
        ],
    }
    message = await _chat_completion(payload, settings)
    content = message.get("content")
    if isinstance(content, list):
        content = "\n".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    if not isinstance(content, str) or not content.strip():
        raise UpstreamFailure("AI analysis response was empty.")
    return content.strip()


def _extract_image_url(message: dict[str, Any]) -> str | None:
    images = message.get("images")
    if isinstance(images, list):
        for image in images:
            url = (image.get("image_url") or {}).get("url") if isinstance(image, dict) else None
            if url:
                return url
    content = message.get("content")
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "image_url":
                url = (part.get("image_url") or {}).get("url")
                if url:
                    return url
    return None


async def generate_cover_image(prompt: str, settings: "Settings") -> str:
    """Return the generated image as a data URI or URL. Raises UpstreamFailure."""
    payload = {
        "model": settings.OPENROUTER_IMAGE_MODEL,
        "modalities": ["text", "image"],
        "messages": [{"role": "user", "content": [{"type": "text", "text": prompt}]}],
    }
    message = await _chat_completion(payload, settings)
    url = _extract_image_url(message)
    if not url:
        raise UpstreamFailure("AI response contained no image.")
    return url
