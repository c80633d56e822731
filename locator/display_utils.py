"""
Display Utilities for the results panel

Formats a LocationAnalysis for human-readable display.

Key functions:
- maps_search_url: Google Maps deep link for the guessed coordinates
- format_coordinates: "lat, lng" with five decimals
- format_confidence: rounded percentage label
- summarize_clue: short Terrain/Biota chip text taken from a clue
- build_display: everything the page needs in one dict
"""

from typing import Any, Optional

from .models import ClueCategory, Coordinates, LocationAnalysis


GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/"

# Icon names understood by the page (lucide icon set)
CATEGORY_ICONS = {
    ClueCategory.VEGETATION: "trees",
    ClueCategory.GEOGRAPHY: "mountain",
    ClueCategory.INFRASTRUCTURE: "navigation",
    ClueCategory.ARCHITECTURE: "home",
    ClueCategory.SOIL: "hexagon",
}

SUMMARY_FALLBACKS = {
    ClueCategory.GEOGRAPHY: "Mixed Terrain",
    ClueCategory.VEGETATION: "Sparse Vegetation",
}


def maps_search_url(coordinates: Coordinates) -> str:
    """
    Build a Google Maps search link centred on the coordinates.

    Example:
        maps_search_url(Coordinates(30.47, -8.88))
        -> "https://www.google.com/maps/search/?api=1&query=30.47,-8.88"
    """
    return f"{GOOGLE_MAPS_SEARCH_URL}?api=1&query={coordinates.lat},{coordinates.lng}"


def format_coordinates(coordinates: Coordinates, precision: int = 5) -> str:
    return f"{coordinates.lat:.{precision}f}, {coordinates.lng:.{precision}f}"


def format_confidence(confidence: float) -> str:
    """Round the model's 0-100 confidence to a whole percentage."""
    return f"{round(confidence)}%"


def summarize_clue(analysis: LocationAnalysis, category: ClueCategory, words: int = 3) -> str:
    """
    First few words of the first clue in a category, for the summary chips.

    Falls back to a generic label when the model gave no clue of that kind.
    """
    for clue in analysis.clues:
        if clue.category is category and clue.description.strip():
            return " ".join(clue.description.split()[:words])
    return SUMMARY_FALLBACKS.get(category, category.value)


def build_display(analysis: Optional[LocationAnalysis]) -> Optional[dict[str, Any]]:
    """
    Precompute the presentation fields the results panel shows.

    Args:
        analysis: The analysis to display, or None

    Returns:
        Dict of display strings, or None when there is no analysis
    """
    if analysis is None:
        return None

    return {
        "title": analysis.specific_area,
        "subtitle": f"{analysis.region}, Morocco",
        "confidence_label": format_confidence(analysis.confidence),
        "coordinates_label": format_coordinates(analysis.coordinates),
        "maps_url": maps_search_url(analysis.coordinates),
        "clue_icons": [CATEGORY_ICONS[clue.category] for clue in analysis.clues],
        "terrain": summarize_clue(analysis, ClueCategory.GEOGRAPHY),
        "biota": summarize_clue(analysis, ClueCategory.VEGETATION),
    }
