"""
Shared fakes for the test suite.
"""

import io
import json
from types import SimpleNamespace

from PIL import Image

from locator import LocationAnalysis


SAMPLE_ANALYSIS = {
    "region": "Souss-Massa",
    "specificArea": "Taroudant",
    "coordinates": {"lat": 30.47, "lng": -8.88},
    "confidence": 82,
    "reasoning": "Argan trees on red soil with pise walls in the Souss valley.",
    "clues": [{"category": "Vegetation", "description": "Argan trees"}],
}

SAMPLE_JSON = json.dumps(SAMPLE_ANALYSIS)


def make_image_bytes(fmt: str = "PNG", size=(16, 12), color=(200, 80, 40)) -> bytes:
    """Encode a small solid-color image."""
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = color + (255,) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeUpload:
    """Quacks like werkzeug's FileStorage."""

    def __init__(self, content: bytes, filename: str = "photo.png", mimetype: str = "image/png"):
        self.content = content
        self.filename = filename
        self.mimetype = mimetype

    def read(self) -> bytes:
        return self.content


def make_response(text, chunks=None):
    """A generate_content response with optional grounding chunks."""
    metadata = SimpleNamespace(grounding_chunks=chunks) if chunks is not None else None
    candidate = SimpleNamespace(grounding_metadata=metadata)
    return SimpleNamespace(text=text, candidates=[candidate])


def web_chunk(title, uri):
    return SimpleNamespace(web=SimpleNamespace(title=title, uri=uri))


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error:
            raise self.error
        return self.response


class FakeGenaiClient:
    """Stands in for google.genai.Client."""

    def __init__(self, response=None, error=None):
        self.models = FakeModels(response=response, error=error)


class FakeAnalyzer:
    """Records analyze() calls and returns a canned result or raises."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else LocationAnalysis.from_dict(SAMPLE_ANALYSIS)
        self.error = error
        self.calls = []

    def analyze(self, images):
        self.calls.append(list(images))
        if self.error:
            raise self.error
        return self.result
