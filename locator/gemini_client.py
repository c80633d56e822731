"""
Gemini Location Analyzer

Sends uploaded photos to Gemini and turns the answer into a LocationAnalysis.

This module:
1. Builds one multimodal request: the images in order, then an instruction
2. Applies one of two response contracts
   - schema: response_schema + application/json, parsed directly
   - grounded: Google Search tool + thinking budget, JSON pulled out of free text
3. Parses the JSON into a LocationAnalysis
4. Attaches grounding citations when the grounded contract produced any

Nothing is retried. Every failure surfaces as a LocationAnalysisError.
"""

import re
import json
import base64
import logging
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

from google import genai
from google.genai import types

from .errors import (
    EmptyResponseError,
    JSONExtractionError,
    MalformedResponseError,
)
from .models import ClueCategory, GroundingSource, ImagePayload, LocationAnalysis
from .prompts import RESPONSE_FIELDS, REQUIRED_FIELDS, get_system_instruction, get_user_instruction

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_THINKING_BUDGET = 16384

# First "{" to last "}" - greedy so nested objects stay intact
JSON_BLOCK_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


class ResponseContract(Enum):
    """How the model is asked to shape its answer."""
    SCHEMA = "schema"
    GROUNDED = "grounded"


def extract_json_block(text: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Locate the JSON object embedded in a free-form model answer.

    Best effort: a brace inside a string value before the real object
    will confuse it. Never raises.

    Returns:
        Tuple of (json_text, error_message)
    """
    if not text:
        return None, "Response text is empty"

    match = JSON_BLOCK_PATTERN.search(text)
    if not match:
        return None, "No JSON object found in response text"

    return match.group(0), None


def extract_grounding_sources(response: Any) -> Optional[list[GroundingSource]]:
    """
    Pull web citations out of the first candidate's grounding metadata.

    Returns None when the response carries no grounding chunks at all.
    Chunks without both a title and a uri are dropped.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) if metadata else None
    if not chunks:
        return None

    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        uri = getattr(web, "uri", None)
        title = getattr(web, "title", None)
        if uri and title:
            sources.append(GroundingSource(title=title, uri=uri))
    return sources


def build_response_schema() -> types.Schema:
    """The strict output schema used by the schema contract."""
    nested = {
        "coordinates": types.Schema(
            type=types.Type.OBJECT,
            properties={
                "lat": types.Schema(type=types.Type.NUMBER),
                "lng": types.Schema(type=types.Type.NUMBER),
            },
            required=["lat", "lng"],
        ),
        "clues": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "category": types.Schema(
                        type=types.Type.STRING,
                        enum=[category.value for category in ClueCategory],
                    ),
                    "description": types.Schema(type=types.Type.STRING),
                },
                required=["category", "description"],
            ),
        ),
    }

    properties = {}
    for name, type_name in RESPONSE_FIELDS.items():
        properties[name] = nested.get(name) or types.Schema(type=types.Type(type_name))

    return types.Schema(
        type=types.Type.OBJECT,
        properties=properties,
        required=list(REQUIRED_FIELDS),
    )


class LocationAnalyzer:
    """
    Locates Moroccan photos with Gemini.

    Usage:
        analyzer = LocationAnalyzer(api_key="...")
        result = analyzer.analyze([
            ImagePayload(data="<base64>", mime_type="image/jpeg"),
        ])
        print(result.region, result.coordinates.lat, result.coordinates.lng)
    """

    def __init__(
        self,
        api_key: str,
        contract: ResponseContract = ResponseContract.SCHEMA,
        model: str = DEFAULT_MODEL,
        thinking_budget: int = DEFAULT_THINKING_BUDGET,
        client: Optional[Any] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            api_key: Gemini API key
            contract: Response contract to request from the model
            model: Gemini model id
            thinking_budget: Reasoning token budget for the grounded contract
            client: Pre-built genai client (tests pass a fake here)
        """
        if not api_key:
            raise ValueError("Gemini API key required")

        self.api_key = api_key
        self.contract = ResponseContract(contract)
        self.model = model
        self.thinking_budget = thinking_budget
        self.client = client or genai.Client(api_key=api_key)

    def build_contents(self, images: Sequence[ImagePayload]) -> list[types.Content]:
        """Image parts in upload order, followed by the instruction text."""
        parts = [
            types.Part.from_bytes(data=base64.b64decode(image.data), mime_type=image.mime_type)
            for image in images
        ]
        parts.append(types.Part.from_text(text=get_user_instruction(self.contract.value)))
        return [types.Content(role="user", parts=parts)]

    def create_generation_config(self) -> types.GenerateContentConfig:
        """Create the Gemini generation configuration for this contract."""
        config_params: dict[str, Any] = {
            "system_instruction": get_system_instruction(self.contract.value),
        }

        if self.contract is ResponseContract.GROUNDED:
            config_params["tools"] = [types.Tool(google_search=types.GoogleSearch())]
            config_params["thinking_config"] = types.ThinkingConfig(
                thinking_budget=self.thinking_budget,
            )
        else:
            config_params["response_mime_type"] = "application/json"
            config_params["response_schema"] = build_response_schema()

        return types.GenerateContentConfig(**config_params)

    def analyze(self, images: Sequence[ImagePayload]) -> LocationAnalysis:
        """
        Send all images in one request and parse the model's answer.

        Args:
            images: Uploaded images, in display order

        Returns:
            LocationAnalysis for the photographed place

        Raises:
            EmptyResponseError: the model produced no text
            JSONExtractionError: no JSON object in a grounded answer
            MalformedResponseError: invalid JSON or wrong shape
        """
        logger.info(
            f"Analyzing {len(images)} image(s) with {self.model} "
            f"(contract={self.contract.value})"
        )

        response = self.client.models.generate_content(
            model=self.model,
            contents=self.build_contents(images),
            config=self.create_generation_config(),
        )

        text = getattr(response, "text", None)
        if not text:
            raise EmptyResponseError("No response from AI")

        if self.contract is ResponseContract.GROUNDED:
            json_text, error = extract_json_block(text)
            if error:
                logger.warning(f"JSON extraction failed: {error}")
                raise JSONExtractionError(f"Failed to parse JSON from AI response: {error}")
        else:
            json_text = text

        analysis = parse_location_analysis(json_text)

        if self.contract is ResponseContract.GROUNDED:
            sources = extract_grounding_sources(response)
            if sources is not None:
                logger.info(f"Attached {len(sources)} grounding source(s)")
                analysis = analysis.with_grounding(sources)

        return analysis


def parse_location_analysis(json_text: str) -> LocationAnalysis:
    """
    Parse the model's JSON text into a LocationAnalysis.

    Raises:
        MalformedResponseError: the text is not JSON or lacks required fields
    """
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

    try:
        return LocationAnalysis.from_dict(data)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise MalformedResponseError(f"Response does not match the expected shape: {e}") from e


# Convenience function for one-off analysis
def analyze_image_location(
    images: Sequence[ImagePayload],
    api_key: str,
    contract: ResponseContract = ResponseContract.SCHEMA,
    model: str = DEFAULT_MODEL,
) -> LocationAnalysis:
    """
    Convenience function to analyze a batch of images once.

    Args:
        images: Uploaded images
        api_key: Gemini API key
        contract: Response contract
        model: Gemini model id

    Returns:
        LocationAnalysis
    """
    analyzer = LocationAnalyzer(api_key=api_key, contract=contract, model=model)
    return analyzer.analyze(images)
