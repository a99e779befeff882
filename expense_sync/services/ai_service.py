import logging
from functools import lru_cache

import httpx
from google import genai
from google.genai import errors as genai_errors

from expense_sync.core.config import settings
from expense_sync.core.exceptions import ModelUnavailableError

logger = logging.getLogger(__name__)


@lru_cache()
def get_client() -> genai.Client:
    return genai.Client(api_key=settings.GEMINI_API_KEY)


def is_configured() -> bool:
    return bool(settings.GEMINI_API_KEY)


def generate_text(prompt: str) -> str:
    try:
        response = get_client().models.generate_content(
            model=settings.GEMINI_MODEL,
            contents=prompt,
        )
    except (genai_errors.APIError, httpx.HTTPError) as e:
        logger.error(f"Gemini call failed: {e}")
        raise ModelUnavailableError(str(e)) from e

    return response.text or ""


def strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()
