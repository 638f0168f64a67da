"""Result data structures produced by a snapshot run."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CaseStatus = Literal["pass", "fail", "no-baseline", "error"]

STATUS_PASS = "pass"
STATUS_FAIL = "fail"
STATUS_NO_BASELINE = "no-baseline"
STATUS_ERROR = "error"


class PixelDiffResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    passed: bool = Field(serialization_alias="pass")
    ratio_diff: float = Field(ge=0.0, le=1.0, serialization_alias="ratioDiff")
    diff_image_path: Optional[str] = Field(default=None, serialization_alias="diffImagePath")


class PerceptualDiffResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    passed: bool = Field(serialization_alias="pass")
    hamming_distance: int = Field(ge=0, serialization_alias="hammingDistance")


class CaseResult(BaseModel):
    """Terminal outcome of one story case."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    url: str
    status: CaseStatus
    error: str = ""  # empty unless status == "error"
    baseline: str = ""
    # diff artifact path, empty unless one was written
    out_path: str = Field(default="", serialization_alias="outPath")
    pixel_diff: Optional[PixelDiffResult] = Field(default=None, serialization_alias="pixelDiff")
    percep_diff: Optional[PerceptualDiffResult] = Field(default=None, serialization_alias="percepDiff")

    def to_report_dict(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        if not self.error:
            data.pop("error")
        return data


class Report(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    generated_at: str = Field(serialization_alias="generatedAt")
    total: int = 0
    passed: int = 0
    failed: int = 0
    no_baseline: int = Field(default=0, serialization_alias="noBaseline")
    errored: int = 0
    cases: list[CaseResult] = Field(default_factory=list)

    def to_report_dict(self) -> dict[str, Any]:
        """Serialize with the report's stable field order."""
        return {
            "generatedAt": self.generated_at,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "noBaseline": self.no_baseline,
            "errored": self.errored,
            "cases": [c.to_report_dict() for c in self.cases],
        }
