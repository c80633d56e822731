"""
Location Analysis Data Model

Typed containers for what flows through one analysis:

- ImagePayload: a base64 encoded upload plus its media type
- LocationAnalysis: the model's guess (region, area, coordinates, clues)
- GroundingSource: a web page the model consulted when search grounding is on

The JSON shape produced by the model uses camelCase keys (specificArea,
groundingUrls). from_dict/to_dict translate between that shape and these
dataclasses so the rest of the code can stay in snake_case.
"""

import math
from typing import Any, Optional
from dataclasses import dataclass
from enum import Enum


class ClueCategory(Enum):
    """The closed set of evidence categories a clue can belong to."""
    VEGETATION = "Vegetation"
    SOIL = "Soil"
    ARCHITECTURE = "Architecture"
    INFRASTRUCTURE = "Infrastructure"
    GEOGRAPHY = "Geography"

    @classmethod
    def parse(cls, value: Any) -> "ClueCategory":
        """Case-insensitive lookup; raises ValueError for anything else."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for category in cls:
            if category.value.lower() == text:
                return category
        raise ValueError(
            f"Unknown clue category: {value!r}. Valid categories: {[c.value for c in cls]}"
        )


@dataclass(frozen=True)
class ImagePayload:
    """One uploaded image, ready to be sent inline to the model."""
    data: str  # base64, no data: prefix
    mime_type: str
    filename: str = ""

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class Clue:
    category: ClueCategory
    description: str


@dataclass(frozen=True)
class GroundingSource:
    title: str
    uri: str


@dataclass(frozen=True)
class LocationAnalysis:
    """The model's best guess for where the uploaded photos were taken."""
    region: str
    specific_area: str
    coordinates: Coordinates
    confidence: float  # 0 - 100, as reported by the model
    reasoning: str
    clues: tuple[Clue, ...]
    grounding_urls: Optional[tuple[GroundingSource, ...]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocationAnalysis":
        """
        Build an analysis from the model's JSON object.

        Raises:
            ValueError: a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        missing = [key for key in ("region", "specificArea", "coordinates", "confidence", "reasoning", "clues")
                   if key not in data]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        coords = data["coordinates"]
        if not isinstance(coords, dict) or "lat" not in coords or "lng" not in coords:
            raise ValueError("coordinates must be an object with lat and lng")

        raw_clues = data["clues"]
        if not isinstance(raw_clues, list):
            raise ValueError("clues must be a list")

        clues = tuple(_parse_clue(clue) for clue in raw_clues)

        grounding = None
        if data.get("groundingUrls") is not None:
            grounding = tuple(
                GroundingSource(title=_to_str(src["title"], "title"), uri=_to_str(src["uri"], "uri"))
                for src in data["groundingUrls"]
            )

        return cls(
            region=_to_str(data["region"], "region"),
            specific_area=_to_str(data["specificArea"], "specificArea"),
            coordinates=Coordinates(lat=_to_float(coords["lat"], "lat"), lng=_to_float(coords["lng"], "lng")),
            confidence=_to_float(data["confidence"], "confidence"),
            reasoning=_to_str(data["reasoning"], "reasoning"),
            clues=clues,
            grounding_urls=grounding,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise back to the camelCase JSON shape the page consumes."""
        result: dict[str, Any] = {
            "region": self.region,
            "specificArea": self.specific_area,
            "coordinates": {"lat": self.coordinates.lat, "lng": self.coordinates.lng},
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "clues": [
                {"category": clue.category.value, "description": clue.description}
                for clue in self.clues
            ],
        }
        if self.grounding_urls is not None:
            result["groundingUrls"] = [
                {"title": src.title, "uri": src.uri} for src in self.grounding_urls
            ]
        return result

    def with_grounding(self, sources: list[GroundingSource]) -> "LocationAnalysis":
        """Return a copy carrying the given grounding sources."""
        return LocationAnalysis(
            region=self.region,
            specific_area=self.specific_area,
            coordinates=self.coordinates,
            confidence=self.confidence,
            reasoning=self.reasoning,
            clues=self.clues,
            grounding_urls=tuple(sources),
        )


def _to_float(value: Any, field_name: str) -> float:
    # bool is an int subclass; true/false is never a valid number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    result = float(value)
    # json.loads accepts NaN and Infinity
    if not math.isfinite(result):
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return result


def _to_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {value!r}")
    return value


def _parse_clue(clue: Any) -> Clue:
    if not isinstance(clue, dict):
        raise ValueError(f"Each clue must be an object, got {clue!r}")
    if "category" not in clue or "description" not in clue:
        raise ValueError("Each clue needs a category and a description")
    return Clue(
        category=ClueCategory.parse(clue["category"]),
        description=_to_str(clue["description"], "description"),
    )
