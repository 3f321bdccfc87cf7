"""Error taxonomy for the capture service."""

from __future__ import annotations


class SnapdiffError(Exception):
    """Base class for all service errors."""


class InvalidInputError(SnapdiffError):
    """The request was malformed; no job was performed."""


class QueueFullError(SnapdiffError):
    """The capture queue is at its configured depth limit."""


class CaptureJobError(SnapdiffError):
    """A job failed after it was accepted."""

    step = "job"


class NavigationError(CaptureJobError):
    step = "navigate"


class NavigationTimeoutError(NavigationError):
    pass


class CaptureTargetNotFoundError(CaptureJobError):
    step = "locate"

    def __init__(self, message: str, attempts: list[dict] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class CaptureTimeoutError(CaptureJobError):
    step = "capture"


class DimensionMismatchError(CaptureJobError):
    step = "diff"

    def __init__(self, baseline_size: tuple[int, int], candidate_size: tuple[int, int]):
        super().__init__(
            f"Baseline is {baseline_size[0]}x{baseline_size[1]} but capture is "
            f"{candidate_size[0]}x{candidate_size[1]}"
        )
        self.baseline_size = baseline_size
        self.candidate_size = candidate_size


class ImageDecodeError(CaptureJobError):
    step = "decode"


class StorageError(CaptureJobError):
    step = "storage"

    def __init__(self, message: str, key: str | None = None, artifact: str | None = None):
        super().__init__(message)
        self.key = key
        self.artifact = artifact


class UnexpectedError(CaptureJobError):
    step = "unexpected"
