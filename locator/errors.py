"""
Exceptions raised while reading uploads and analysing locations.
"""


class FileReadError(Exception):
    """An uploaded file could not be read as an image."""


class LocationAnalysisError(Exception):
    """Base class for failures of a single analysis call."""


class EmptyResponseError(LocationAnalysisError):
    """The model returned no text."""


class JSONExtractionError(LocationAnalysisError):
    """No JSON object could be located in a free-form response."""


class MalformedResponseError(LocationAnalysisError):
    """The response JSON was invalid or did not match the expected shape."""
