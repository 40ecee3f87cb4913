"""Vision module for tagging listing photos with a vision-language model.

The image is downloaded, sent inline to the Gemini generateContent endpoint
with a prompt that asks for a single JSON object, and the object is parsed
into the fields the listing flow needs.
"""
import base64
import json
import logging
import re
from typing import Any, Dict, Optional

import requests

from config import settings_conf

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

SCAN_FIELDS = ['itemName', 'description', 'category', 'suggestedPriceINR', 'estimatedWeightKg']

SCAN_PROMPT = (
    "You are helping a user list a secondhand item for sale. Look at the photo and "
    "respond with ONLY a JSON object, no prose, with these keys: "
    "itemName (short title), description (one or two sentences), "
    "category (one word, e.g. Electronics, Furniture, Clothing, Books, Sports, Other), "
    "suggestedPriceINR (number, a fair used price in Indian rupees), "
    "estimatedWeightKg (number)."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

class VisionError(Exception):
    """Raised when an image can't be fetched or the model response can't be used."""
    pass

def parse_scan_response(text: str) -> Dict[str, Any]:
    """Parse the model's answer, tolerating a fenced code block around the JSON.

    Raises:
        VisionError: If no JSON object can be read
    """
    if not text or not text.strip():
        raise VisionError("Model returned an empty response")

    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text
    candidate = candidate.strip()
    if not candidate.startswith('{'):
        start, end = candidate.find('{'), candidate.rfind('}')
        if start == -1 or end <= start:
            raise VisionError("Model response did not contain JSON")
        candidate = candidate[start:end + 1]

    try:
        data = json.loads(candidate)
    except ValueError as e:
        raise VisionError(f"Model response is not valid JSON: {str(e)}")
    if not isinstance(data, dict):
        raise VisionError("Model response is not a JSON object")

    return {field: data.get(field) for field in SCAN_FIELDS}

class GeminiClient:
    """Minimal Gemini REST client for image tagging."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key if api_key is not None else settings_conf['gemini_api_key']
        self.model = model or settings_conf['gemini_model']
        self.timeout = timeout or settings_conf['gemini_timeout']
        self.session = session or requests.Session()

    def fetch_image(self, image_url: str) -> Dict[str, str]:
        """Download an image and return it as an inline_data part.

        Raises:
            VisionError: If the download fails
        """
        try:
            response = self.session.get(image_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise VisionError(f"Failed to fetch image: {str(e)}") from e

        mime_type = response.headers.get('content-type', 'image/jpeg').split(';')[0].strip()
        if not mime_type.startswith('image/'):
            mime_type = 'image/jpeg'
        return {
            "mime_type": mime_type,
            "data": base64.b64encode(response.content).decode('ascii')
        }

    def generate(self, image: Dict[str, str]) -> str:
        """Send the prompt and image to the model and return its text.

        Raises:
            VisionError: If the call fails or returns no text
        """
        if not self.api_key:
            raise VisionError("Gemini API key is not configured")

        payload = {
            "contents": [{
                "parts": [
                    {"text": SCAN_PROMPT},
                    {"inline_data": image}
                ]
            }],
            "generationConfig": {
                "temperature": 0.2,
                "responseMimeType": "application/json"
            }
        }

        try:
            response = self.session.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise VisionError(f"Model request timed out after {self.timeout} seconds") from e
        except requests.exceptions.RequestException as e:
            raise VisionError(f"Model request failed: {str(e)}") from e
        except ValueError as e:
            raise VisionError(f"Invalid model response: {str(e)}") from e

        candidates = data.get("candidates") or []
        if not candidates:
            raise VisionError("Model returned no candidates")
        parts = candidates[0].get("content", {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise VisionError("Model returned no content")
        return text

    def scan(self, image_url: str) -> Dict[str, Any]:
        """Tag a listing photo.

        Returns:
            Dict with itemName, description, category, suggestedPriceINR, estimatedWeightKg

        Raises:
            VisionError: If fetching, the model call or parsing fails
        """
        if not self.api_key:
            raise VisionError("Gemini API key is not configured")
        image = self.fetch_image(image_url)
        result = parse_scan_response(self.generate(image))
        logger.info(f"Scanned image as {result.get('itemName')!r} ({result.get('category')})")
        return result

__all__ = [
    'GeminiClient',
    'VisionError',
    'parse_scan_response',
    'SCAN_FIELDS',
    'SCAN_PROMPT'
]
