"""Request, key and response models for a capture job."""

from __future__ import annotations

import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snapdiff.errors import InvalidInputError


class Rect(BaseModel):
    """A masked sub-area of the captured image, in image pixel coordinates."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(ge=0)
    height: int = Field(ge=0)


class CaptureRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_url: str
    ignore_regions: tuple[Rect, ...] = ()

    @classmethod
    def from_query(cls, url: str | None, ignore: str | None = None) -> "CaptureRequest":
        """Build a request from the transport encoding.

        ``ignore`` is a JSON array of ``{x, y, width, height}`` objects.
        Raises InvalidInputError for a missing/malformed URL or region payload.
        """
        # Imported here to keep models free of an import cycle with url_utils
        from snapdiff.url_utils import validate_target_url

        validate_target_url(url or "")

        regions: list = []
        if ignore:
            try:
                regions = json.loads(ignore)
            except json.JSONDecodeError as e:
                raise InvalidInputError("Invalid JSON for ignore regions") from e
            if not isinstance(regions, list):
                raise InvalidInputError("Invalid JSON for ignore regions")
        try:
            return cls(target_url=url, ignore_regions=tuple(Rect(**r) for r in regions))
        except (TypeError, ValidationError) as e:
            raise InvalidInputError("Invalid JSON for ignore regions") from e


class ArtifactKeySet(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: str
    generation: int
    raw_key: str
    baseline_key: str
    diff_key: str


class CaptureResponse(BaseModel):
    message: str
    baseline_url: str
    capture_url: Optional[str] = None
    diff_url: Optional[str] = None
    changed_pixels: Optional[int] = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)
