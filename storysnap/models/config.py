"""Configuration models for snapshot runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ViewportSize(BaseModel):
    name: str = "desktop"
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)


class DiffPixelColor(BaseModel):
    r: int = Field(default=255, ge=0, le=255)
    g: int = Field(default=0, ge=0, le=255)
    b: int = Field(default=255, ge=0, le=255)

    def as_rgba(self) -> tuple[int, int, int, int]:
        return (self.r, self.g, self.b, 255)


class RunConfig(BaseModel):
    # Story tree and server
    input_dir: str = "."
    base_url: str = "http://127.0.0.1:3000"

    # Execution limits
    concurrency: int = 10
    instances: int = 4
    timeout_seconds: float = 30
    selector_timeout_seconds: float = 10
    settle_ms: int = 50
    limit: int = Field(default=0, ge=0)

    # Browser
    wait_selectors: list[str] = Field(
        default_factory=lambda: ["#storybook-root", "#root"]
    )
    chrome_args: list[str] = Field(default_factory=list)
    headless: bool = True

    # Comparison
    threshold: int = Field(default=0, ge=0, le=100)  # percent of differing pixels
    perceptual_distance: int = Field(default=10, ge=0)
    diff_pixel_color: DiffPixelColor = Field(default_factory=DiffPixelColor)
    default_sizes: list[ViewportSize] = Field(
        default_factory=lambda: [
            ViewportSize(name="desktop", width=1280, height=720),
            ViewportSize(name="tablet", width=768, height=1024),
            ViewportSize(name="mobile", width=375, height=812),
        ]
    )
    update_baselines: bool = False

    # Reporting
    progress_queue_size: int = Field(default=256, gt=0)
    report_path: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("default_sizes")
    @classmethod
    def require_default_size(cls, v: list[ViewportSize]) -> list[ViewportSize]:
        if not v:
            raise ValueError("at least one default size must be specified")
        return v

    @property
    def root(self) -> Path:
        return Path(self.input_dir).expanduser().resolve()

    @property
    def snapshot_dir(self) -> Path:
        """Artifacts live next to the story tree, under its parent."""
        return self.root.parent / "__image-snapshots__"

    def resolved_report_path(self) -> Path:
        if self.report_path:
            return Path(self.report_path).expanduser()
        return self.root / "report.json"

    @classmethod
    def load(cls, path: str | Path) -> "RunConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
