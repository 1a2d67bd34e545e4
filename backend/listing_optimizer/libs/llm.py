"""Listing rewrite through an OpenAI-compatible chat-completion API."""

import asyncio
import json
import logging
import re
import threading
from typing import Any, Dict, List, Optional

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

from listing_optimizer.libs.config import LLMSettings, get_llm_settings, resolve_llm_api_key
from listing_optimizer.libs.errors import ConfigurationError, ResponseShapeError, RewriteServiceError
from listing_optimizer.libs.models import RawListing, RewriteResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert Amazon product listing optimizer. Your task is to improve product "
    "listings by making them keyword-rich, clear, persuasive, and compliant with Amazon's "
    "guidelines. You always respond with valid JSON only, no other text."
)

# ---- Client (created on first use) ----
_client: Optional[OpenAI] = None
_client_lock = threading.Lock()


def get_client() -> OpenAI:
    """Return the shared completion client, creating it on first call.

    Raises ConfigurationError when no API key is configured. The key is only
    checked here so importing this module never fails.
    """
    global _client
    if _client is not None:
        return _client
    with _client_lock:
        if _client is None:
            api_key = resolve_llm_api_key()
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY not defined in environment variables")
            settings = get_llm_settings()
            if settings.base_url:
                _client = OpenAI(api_key=api_key, base_url=settings.base_url)
            else:
                _client = OpenAI(api_key=api_key)
            logger.info("Completion client initialized (model=%s)", settings.model)
    return _client


def reset_client() -> None:
    global _client
    with _client_lock:
        _client = None


# ---- Prompt ----
def build_optimization_prompt(listing: RawListing) -> str:
    bullets = "\n".join(f"{i}. {b}" for i, b in enumerate(listing.bullets, start=1))

    return f"""Analyze and optimize this Amazon product listing.

ORIGINAL PRODUCT:
Title: {listing.title}

Bullet Points:
{bullets}

Description: {listing.description}

TASK: Create optimized version with these requirements:

1. OPTIMIZED TITLE (150-200 characters):
   - Place high-value keywords at the beginning
   - Include brand, key features, and product type
   - Make it readable and compelling

2. OPTIMIZED BULLET POINTS (exactly 5 bullets, each 150-200 characters):
   - Start each with a BENEFIT in CAPITAL LETTERS
   - Include specific details and measurements
   - Focus on customer value and problem-solving
   - Naturally incorporate relevant keywords

3. ENHANCED DESCRIPTION (300-500 words):
   - Write a compelling narrative about the product
   - Highlight unique selling points and benefits
   - Address customer pain points
   - Use natural keyword integration (no stuffing)
   - Maintain Amazon compliance (no superlatives like "best", "cheapest")

4. KEYWORD SUGGESTIONS (exactly 5 keyword phrases):
   - Extract from product features and benefits
   - Include long-tail keywords
   - Focus on search intent and relevance

IMPORTANT: Return ONLY a JSON object in this EXACT format with no other text:

{{
  "optimizedTitle": "your optimized title here",
  "optimizedBullets": [
    "BENEFIT 1: detailed bullet point with value proposition",
    "BENEFIT 2: detailed bullet point with specific features",
    "BENEFIT 3: detailed bullet point with measurements or specs",
    "BENEFIT 4: detailed bullet point addressing customer needs",
    "BENEFIT 5: detailed bullet point with unique selling point"
  ],
  "optimizedDescription": "your complete enhanced description here as continuous text",
  "keywords": [
    "keyword phrase 1",
    "keyword phrase 2",
    "keyword phrase 3",
    "keyword phrase 4",
    "keyword phrase 5"
  ]
}}"""


def build_request(listing: RawListing, settings: LLMSettings) -> Dict[str, Any]:
    return {
        "model": settings.model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_optimization_prompt(listing)},
        ],
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "response_format": {"type": "json_object"},
    }


# ---- Response parsing ----
class AIPromptResponse(BaseModel):
    optimizedTitle: str = Field(min_length=1)
    optimizedBullets: List[str] = Field(min_length=1)
    optimizedDescription: str = Field(min_length=1)
    keywords: List[str] = Field(min_length=1)


_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _load_json_object(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        # Some models wrap the object in code fences or prose.
        match = _JSON_OBJECT.search(text)
        if not match:
            raise ResponseShapeError(f"AI response is not valid JSON: {e}") from e
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as e2:
            raise ResponseShapeError(f"AI response is not valid JSON: {e2}") from e2


def _clean_list(values: List[str]) -> tuple:
    return tuple(v.strip() for v in values if v and v.strip())


def parse_rewrite_response(text: Optional[str]) -> RewriteResult:
    """Parse the completion text into a RewriteResult.

    Missing, empty or mistyped fields raise ResponseShapeError; values from
    the original listing are never substituted.
    """
    if not text or not text.strip():
        raise ResponseShapeError("No response from AI service")

    data = _load_json_object(text.strip())
    if not isinstance(data, dict):
        raise ResponseShapeError("AI response is not a JSON object")

    try:
        parsed = AIPromptResponse.model_validate(data)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ResponseShapeError(
            f"AI response missing required fields: {', '.join(fields) or 'unknown'}"
        ) from e

    result = RewriteResult(
        optimized_title=parsed.optimizedTitle.strip(),
        optimized_bullets=_clean_list(parsed.optimizedBullets),
        optimized_description=parsed.optimizedDescription.strip(),
        suggested_keywords=_clean_list(parsed.keywords),
    )
    empty = [
        name for name, value in (
            ("optimizedTitle", result.optimized_title),
            ("optimizedBullets", result.optimized_bullets),
            ("optimizedDescription", result.optimized_description),
            ("keywords", result.suggested_keywords),
        ) if not value
    ]
    if empty:
        raise ResponseShapeError(f"AI response missing required fields: {', '.join(empty)}")
    return result


# ---- Transport ----
def _complete(client: OpenAI, request: Dict[str, Any]) -> str:
    completion = client.chat.completions.create(**request)
    if not completion.choices:
        return ""
    return completion.choices[0].message.content or ""


def _complete_streaming(client: OpenAI, request: Dict[str, Any]) -> str:
    parts: List[str] = []
    with client.chat.completions.create(**request, stream=True) as stream:
        for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                parts.append(content)
    return "".join(parts)


async def optimize_listing(
    listing: RawListing,
    stream: bool = False,
    settings: Optional[LLMSettings] = None,
) -> RewriteResult:
    """Ask the completion service for an optimized rewrite of ``listing``.

    ``stream=True`` accumulates incrementally delivered chunks before parsing;
    both modes share the same parser.
    """
    client = get_client()
    settings = settings or get_llm_settings()
    request = build_request(listing, settings)
    fetch = _complete_streaming if stream else _complete

    logger.info("Sending ASIN %s to %s (stream=%s)", listing.asin, settings.model, stream)
    try:
        text = await asyncio.to_thread(fetch, client, request)
    except Exception as e:
        raise RewriteServiceError(f"AI optimization failed for ASIN {listing.asin}: {e}") from e

    logger.info("Received %d chars from completion service", len(text))
    try:
        return parse_rewrite_response(text)
    except ResponseShapeError as e:
        raise ResponseShapeError(f"{e} (ASIN {listing.asin}, stage: parse rewrite response)") from e
