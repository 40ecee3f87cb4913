"""Tests for the photo scan client."""

import base64

import pytest
import requests

from vision import GeminiClient, VisionError, parse_scan_response

SCAN_JSON = (
    '{"itemName": "Desk Lamp", "description": "Adjustable lamp", "category": "Electronics", '
    '"suggestedPriceINR": 600, "estimatedWeightKg": 1.2, "confidence": 0.9}'
)

class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON")
        return self._json

class FakeSession:
    def __init__(self, image=None, model=None):
        self.image = image or FakeResponse(content=b"\x89PNG", headers={"content-type": "image/png"})
        self.model = model
        self.posts = []

    def get(self, url, timeout=None):
        return self.image

    def post(self, url, params=None, json=None, timeout=None):
        self.posts.append({"url": url, "params": params, "json": json})
        return self.model

def model_reply(text):
    return FakeResponse(json_data={"candidates": [{"content": {"parts": [{"text": text}]}}]})

def test_parse_plain_json():
    """Test that only the listing fields are kept."""
    assert parse_scan_response(SCAN_JSON) == {
        "itemName": "Desk Lamp",
        "description": "Adjustable lamp",
        "category": "Electronics",
        "suggestedPriceINR": 600,
        "estimatedWeightKg": 1.2
    }

def test_parse_fenced_json():
    """Test that a fenced code block is unwrapped."""
    text = f"Here you go:\n```json\n{SCAN_JSON}\n```"

    assert parse_scan_response(text)["itemName"] == "Desk Lamp"

def test_parse_json_with_prose():
    """Test that surrounding prose is ignored."""
    assert parse_scan_response(f"Sure! {SCAN_JSON} Hope that helps.")["category"] == "Electronics"

@pytest.mark.parametrize("text", ["", "no json here", "```json\n{broken\n```", "[1, 2]"])
def test_parse_failures(text):
    """Test that unusable answers raise VisionError."""
    with pytest.raises(VisionError):
        parse_scan_response(text)

def test_scan_sends_inline_image():
    """Test the generateContent request and the parsed result."""
    session = FakeSession(model=model_reply(SCAN_JSON))
    client = GeminiClient(api_key="key", model="gemini-test", timeout=5, session=session)

    result = client.scan("https://cdn.example.com/lamp.png")

    assert result["itemName"] == "Desk Lamp"
    post = session.posts[0]
    assert post["url"].endswith("/models/gemini-test:generateContent")
    assert post["params"] == {"key": "key"}
    inline = post["json"]["contents"][0]["parts"][1]["inline_data"]
    assert inline["mime_type"] == "image/png"
    assert base64.b64decode(inline["data"]) == b"\x89PNG"

def test_scan_without_api_key():
    """Test that a missing key fails before any request."""
    session = FakeSession(model=model_reply(SCAN_JSON))

    with pytest.raises(VisionError):
        GeminiClient(api_key="", session=session).scan("https://cdn.example.com/lamp.png")
    assert session.posts == []

def test_scan_image_fetch_failure():
    """Test that a failed download is reported."""
    session = FakeSession(image=FakeResponse(status_code=404))

    with pytest.raises(VisionError) as exc_info:
        GeminiClient(api_key="key", session=session).scan("https://cdn.example.com/gone.png")

    assert "Failed to fetch image" in str(exc_info.value)

def test_scan_model_failure():
    """Test that model errors and empty answers are reported."""
    session = FakeSession(model=FakeResponse(status_code=500))
    with pytest.raises(VisionError):
        GeminiClient(api_key="key", session=session).scan("https://cdn.example.com/lamp.png")

    session = FakeSession(model=FakeResponse(json_data={"candidates": []}))
    with pytest.raises(VisionError):
        GeminiClient(api_key="key", session=session).scan("https://cdn.example.com/lamp.png")
