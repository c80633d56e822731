"""
Locator module for guessing where in Morocco a set of photos was taken.

This module provides:
- Location data model (LocationAnalysis, clues, grounding sources)
- Gemini analyzer with schema-constrained and search-grounded contracts
- Prompt templates for both contracts
- Upload intake with Pillow validation
- Upload & orchestration controller (per-session state machine)
- Display utilities for the results panel
"""

from .models import (
    ClueCategory,
    Clue,
    Coordinates,
    GroundingSource,
    ImagePayload,
    LocationAnalysis,
)

from .errors import (
    FileReadError,
    LocationAnalysisError,
    EmptyResponseError,
    JSONExtractionError,
    MalformedResponseError,
)

from .gemini_client import (
    LocationAnalyzer,
    ResponseContract,
    analyze_image_location,
    build_response_schema,
    extract_json_block,
    extract_grounding_sources,
    parse_location_analysis,
)

from .image_io import (
    load_image_payload,
    read_upload,
)

from .controller import (
    UploadController,
    AnalysisState,
    READ_ERROR_MESSAGE,
    ANALYSIS_ERROR_MESSAGE,
)

from .display_utils import (
    maps_search_url,
    format_coordinates,
    format_confidence,
    summarize_clue,
    build_display,
    CATEGORY_ICONS,
)

__all__ = [
    # Models
    "ClueCategory",
    "Clue",
    "Coordinates",
    "GroundingSource",
    "ImagePayload",
    "LocationAnalysis",
    # Errors
    "FileReadError",
    "LocationAnalysisError",
    "EmptyResponseError",
    "JSONExtractionError",
    "MalformedResponseError",
    # Analyzer
    "LocationAnalyzer",
    "ResponseContract",
    "analyze_image_location",
    "build_response_schema",
    "extract_json_block",
    "extract_grounding_sources",
    "parse_location_analysis",
    # Upload intake
    "load_image_payload",
    "read_upload",
    # Controller
    "UploadController",
    "AnalysisState",
    "READ_ERROR_MESSAGE",
    "ANALYSIS_ERROR_MESSAGE",
    # Display Utilities
    "maps_search_url",
    "format_coordinates",
    "format_confidence",
    "summarize_clue",
    "build_display",
    "CATEGORY_ICONS",
]
