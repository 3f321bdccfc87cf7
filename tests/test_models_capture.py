"""Tests for capture request and response models."""

import pytest
from pydantic import ValidationError

from snapdiff.errors import InvalidInputError
from snapdiff.models.capture import CaptureRequest, CaptureResponse, Rect


class TestRect:
    def test_rejects_negative_values(self):
        with pytest.raises(ValidationError):
            Rect(x=-1, y=0, width=10, height=10)

    def test_is_frozen(self):
        rect = Rect(x=1, y=2, width=3, height=4)
        with pytest.raises(ValidationError):
            rect.x = 5


class TestCaptureRequestFromQuery:
    def test_url_only(self):
        request = CaptureRequest.from_query("https://example.com")
        assert request.target_url == "https://example.com"
        assert request.ignore_regions == ()

    def test_parses_ignore_regions_in_order(self):
        request = CaptureRequest.from_query(
            "https://example.com",
            '[{"x": 0, "y": 0, "width": 5, "height": 5}, {"x": 10, "y": 20, "width": 1, "height": 2}]',
        )
        assert request.ignore_regions == (
            Rect(x=0, y=0, width=5, height=5),
            Rect(x=10, y=20, width=1, height=2),
        )

    def test_missing_url(self):
        with pytest.raises(InvalidInputError, match="Missing url"):
            CaptureRequest.from_query(None)

    def test_invalid_url(self):
        with pytest.raises(InvalidInputError, match="Invalid url"):
            CaptureRequest.from_query("not a url")

    @pytest.mark.parametrize("ignore", [
        "not json",
        '{"x": 0}',
        "[1, 2]",
        '[{"x": -1, "y": 0, "width": 1, "height": 1}]',
        '[{"x": 0, "y": 0, "width": 1}]',
        '[{"x": "a", "y": 0, "width": 1, "height": 1}]',
    ])
    def test_malformed_ignore_payload(self, ignore):
        with pytest.raises(InvalidInputError, match="ignore regions"):
            CaptureRequest.from_query("https://example.com", ignore)

    def test_request_is_immutable(self):
        request = CaptureRequest.from_query("https://example.com")
        with pytest.raises(ValidationError):
            request.target_url = "https://other.example.com"


class TestCaptureResponse:
    def test_baseline_payload_omits_diff_fields(self):
        response = CaptureResponse(message="Baseline created", baseline_url="u")
        assert response.to_payload() == {"message": "Baseline created", "baseline_url": "u"}

    def test_diff_payload(self):
        response = CaptureResponse(
            message="Diff complete: 4 pixels changed",
            baseline_url="b", capture_url="c", diff_url="d", changed_pixels=4,
        )
        payload = response.to_payload()
        assert payload["changed_pixels"] == 4
        assert set(payload) == {"message", "baseline_url", "capture_url", "diff_url", "changed_pixels"}
