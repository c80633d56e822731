"""
Upload & Orchestration Controller

Owns the state of one browser session and drives a single analysis:

1. Read every selected file into an ImagePayload, in parallel
2. Wait for all reads; any failure fails the whole batch
3. Send all payloads to the analyzer in one call
4. Keep either the LocationAnalysis or a user-facing error, never both

States: idle -> loading -> result_ready | error -> idle (reset)

A new upload or a reset supersedes whatever attempt is still in flight.
The in-flight call is not cancelled; its outcome is simply discarded.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from .display_utils import build_display
from .image_io import read_upload
from .models import ImagePayload, LocationAnalysis

logger = logging.getLogger(__name__)

READ_ERROR_MESSAGE = "Error reading files."
ANALYSIS_ERROR_MESSAGE = (
    "Failed to analyze the location. "
    "The AI might be having trouble reading the image data."
)


class AnalysisState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESULT_READY = "result_ready"
    ERROR = "error"


class UploadController:
    """
    Session state plus the upload -> analyze flow.

    Usage:
        controller = UploadController(analyzer)
        controller.process_files(request.files.getlist("images"))
        payload = controller.to_dict()
    """

    def __init__(
        self,
        analyzer: Any,
        read_file: Callable[[Any], ImagePayload] = read_upload,
        max_workers: int = 4,
    ):
        """
        Args:
            analyzer: Anything with analyze(list[ImagePayload]) -> LocationAnalysis
            read_file: Turns one uploaded file into an ImagePayload
            max_workers: Upper bound on concurrent file reads
        """
        self.analyzer = analyzer
        self.read_file = read_file
        self.max_workers = max(1, max_workers)

        self._lock = threading.Lock()
        self._generation = 0

        self.state = AnalysisState.IDLE
        self.images: list[str] = []
        self.analysis: Optional[LocationAnalysis] = None
        self.error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state is AnalysisState.LOADING

    def process_files(self, files: Iterable[Any]) -> AnalysisState:
        """
        Read the selected files and analyze them together.

        An empty selection leaves the state untouched.

        Returns:
            The state after this attempt (or the current state if superseded)
        """
        files = list(files)
        if not files:
            return self.state

        with self._lock:
            self._generation += 1
            generation = self._generation
            self.state = AnalysisState.LOADING
            self.images = []
            self.analysis = None
            self.error = None

        try:
            payloads = self._read_all(files)
        except Exception:
            logger.exception(f"Failed to read {len(files)} uploaded file(s)")
            self._finish(generation, error=READ_ERROR_MESSAGE, clear_images=True)
            return self.state

        with self._lock:
            if generation != self._generation:
                logger.info("Upload superseded before analysis; skipping model call")
                return self.state
            self.images = [payload.to_data_url() for payload in payloads]

        try:
            result = self.analyzer.analyze(payloads)
        except Exception:
            logger.exception("Location analysis failed")
            self._finish(generation, error=ANALYSIS_ERROR_MESSAGE)
        else:
            self._finish(generation, analysis=result)

        return self.state

    def reset(self) -> None:
        """Back to an empty selection, whatever the current state."""
        with self._lock:
            self._generation += 1
            self.state = AnalysisState.IDLE
            self.images = []
            self.analysis = None
            self.error = None

    def fail(self, message: str) -> None:
        """Put the session in the error state without attempting an analysis."""
        with self._lock:
            self._generation += 1
            self.state = AnalysisState.ERROR
            self.images = []
            self.analysis = None
            self.error = message

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready snapshot of the session."""
        with self._lock:
            return {
                "state": self.state.value,
                "loading": self.loading,
                "error": self.error,
                "images": list(self.images),
                "analysis": self.analysis.to_dict() if self.analysis else None,
                "display": build_display(self.analysis),
            }

    def _read_all(self, files: Sequence[Any]) -> list[ImagePayload]:
        # Results come back in selection order regardless of completion order
        workers = min(self.max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.read_file, f) for f in files]
            return [future.result() for future in futures]

    def _finish(
        self,
        generation: int,
        analysis: Optional[LocationAnalysis] = None,
        error: Optional[str] = None,
        clear_images: bool = False,
    ) -> None:
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding outcome of a superseded upload")
                return
            if error is not None:
                self.state = AnalysisState.ERROR
                self.error = error
                self.analysis = None
                if clear_images:
                    self.images = []
            else:
                self.state = AnalysisState.RESULT_READY
                self.analysis = analysis
                self.error = None
