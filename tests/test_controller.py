"""
Tests for the upload & orchestration controller.

Covers the session state machine:
- idle -> loading -> result_ready | error -> idle
- all-or-nothing file reads
- superseded attempts never overwrite newer state
"""

import threading

import pytest

from locator import (
    ANALYSIS_ERROR_MESSAGE,
    READ_ERROR_MESSAGE,
    AnalysisState,
    FileReadError,
    ImagePayload,
    MalformedResponseError,
    UploadController,
)

from helpers import FakeAnalyzer, FakeUpload, make_image_bytes


def _uploads(count: int) -> list[FakeUpload]:
    return [
        FakeUpload(make_image_bytes("PNG", color=(10 * i, 20, 30)), filename=f"img{i}.png")
        for i in range(count)
    ]


class TestUploadController:

    def setup_method(self):
        self.analyzer = FakeAnalyzer()
        self.controller = UploadController(self.analyzer)

    def test_starts_idle(self):
        snapshot = self.controller.to_dict()

        assert snapshot["state"] == "idle"
        assert snapshot["loading"] is False
        assert snapshot["images"] == []
        assert snapshot["analysis"] is None
        assert snapshot["display"] is None

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_one_display_image_per_file(self, count):
        self.controller.process_files(_uploads(count))

        assert len(self.controller.images) == count
        assert len(self.analyzer.calls) == 1
        assert len(self.analyzer.calls[0]) == count

    def test_success_reaches_result_ready_without_error(self):
        state = self.controller.process_files(_uploads(2))

        assert state is AnalysisState.RESULT_READY
        assert self.controller.error is None
        assert self.controller.loading is False
        snapshot = self.controller.to_dict()
        assert snapshot["analysis"]["confidence"] == 82
        assert snapshot["display"]["maps_url"].endswith("query=30.47,-8.88")

    def test_payloads_keep_selection_order(self):
        uploads = _uploads(4)

        self.controller.process_files(uploads)

        assert [p.filename for p in self.analyzer.calls[0]] == [u.filename for u in uploads]
        assert all(url.startswith("data:image/png;base64,") for url in self.controller.images)

    def test_read_failure_skips_analysis(self):
        uploads = _uploads(2) + [FakeUpload(b"not an image", filename="bad.png")]

        state = self.controller.process_files(uploads)

        assert state is AnalysisState.ERROR
        assert self.controller.error == READ_ERROR_MESSAGE
        assert self.controller.loading is False
        assert self.controller.images == []
        assert self.analyzer.calls == []

    def test_analysis_failure_reported_generically(self):
        self.analyzer.error = MalformedResponseError("missing coordinates")

        state = self.controller.process_files(_uploads(1))

        assert state is AnalysisState.ERROR
        assert self.controller.error == ANALYSIS_ERROR_MESSAGE
        assert self.controller.loading is False
        assert self.controller.analysis is None

    def test_analysis_failure_keeps_display_images(self):
        self.analyzer.error = RuntimeError("boom")

        self.controller.process_files(_uploads(2))

        assert self.controller.state is AnalysisState.ERROR
        assert len(self.controller.images) == 2

    def test_heic_upload_reaches_analyzer(self):
        heic = FakeUpload(b"\x00\x00\x00\x18ftypheic", filename="IMG_0001.HEIC", mimetype="image/heic")

        state = self.controller.process_files(_uploads(1) + [heic])

        assert state is AnalysisState.RESULT_READY
        assert [p.mime_type for p in self.analyzer.calls[0]] == ["image/png", "image/heic"]

    def test_fail_sets_error_without_analysis(self):
        self.controller.process_files(_uploads(1))

        self.controller.fail("Gemini client is not configured.")

        snapshot = self.controller.to_dict()
        assert snapshot["state"] == "error"
        assert snapshot["error"] == "Gemini client is not configured."
        assert snapshot["images"] == []
        assert snapshot["analysis"] is None
        assert len(self.analyzer.calls) == 1

    def test_any_exception_from_analyzer_becomes_error_state(self):
        self.analyzer.error = ConnectionError("socket closed")

        self.controller.process_files(_uploads(1))

        assert self.controller.state is AnalysisState.ERROR
        assert self.controller.to_dict()["analysis"] is None

    def test_empty_selection_is_a_no_op(self):
        self.controller.process_files(_uploads(1))

        state = self.controller.process_files([])

        assert state is AnalysisState.RESULT_READY
        assert len(self.analyzer.calls) == 1

    def test_new_upload_clears_previous_error(self):
        self.analyzer.error = RuntimeError("boom")
        self.controller.process_files(_uploads(1))

        self.analyzer.error = None
        self.controller.process_files(_uploads(1))

        assert self.controller.state is AnalysisState.RESULT_READY
        assert self.controller.error is None

    @pytest.mark.parametrize("prior", ["idle", "result", "error"])
    def test_reset_restores_empty_selection(self, prior):
        if prior == "result":
            self.controller.process_files(_uploads(2))
        elif prior == "error":
            self.analyzer.error = RuntimeError("boom")
            self.controller.process_files(_uploads(2))

        self.controller.reset()

        snapshot = self.controller.to_dict()
        assert snapshot["state"] == "idle"
        assert snapshot["loading"] is False
        assert snapshot["error"] is None
        assert snapshot["images"] == []
        assert snapshot["analysis"] is None


class BlockingAnalyzer(FakeAnalyzer):
    """Holds analyze() open until released, so loading can be observed."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def analyze(self, images):
        self.started.set()
        self.release.wait(timeout=5)
        return super().analyze(images)


class TestInFlightAttempts:

    def setup_method(self):
        self.analyzer = BlockingAnalyzer()
        self.controller = UploadController(self.analyzer)
        self.worker = threading.Thread(
            target=self.controller.process_files, args=(_uploads(2),)
        )

    def teardown_method(self):
        self.analyzer.release.set()
        self.worker.join(timeout=5)

    def test_loading_while_analysis_in_flight(self):
        self.worker.start()
        assert self.analyzer.started.wait(timeout=5)

        snapshot = self.controller.to_dict()
        assert snapshot["state"] == "loading"
        assert snapshot["loading"] is True
        assert len(snapshot["images"]) == 2

    def test_reset_during_loading_discards_late_result(self):
        self.worker.start()
        assert self.analyzer.started.wait(timeout=5)

        self.controller.reset()
        self.analyzer.release.set()
        self.worker.join(timeout=5)

        assert self.controller.state is AnalysisState.IDLE
        assert self.controller.analysis is None
        assert self.controller.images == []


def test_custom_reader_failure_fails_whole_batch():
    calls = []

    def reader(upload):
        calls.append(upload)
        if upload == "second":
            raise FileReadError("unreadable")
        return ImagePayload(data="eA==", mime_type="image/jpeg", filename=upload)

    analyzer = FakeAnalyzer()
    controller = UploadController(analyzer, read_file=reader, max_workers=2)

    controller.process_files(["first", "second", "third"])

    assert controller.state is AnalysisState.ERROR
    assert controller.error == READ_ERROR_MESSAGE
    assert analyzer.calls == []
