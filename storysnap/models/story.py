"""Story cases and the case-list loader.

A case list is a JSON array of story declarations. Each declaration may name
its viewports in one of three shapes:

- a list of size names resolved against ``RunConfig.default_sizes``
- a single ``{"width": .., "height": ..}`` object
- a list of such objects

The shape is resolved here, once, into one ``StoryCase`` per viewport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from storysnap.errors import SetupError
from storysnap.models.config import ViewportSize

logger = logging.getLogger(__name__)


class StoryCase(BaseModel):
    """One URL + viewport rendering target."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    url: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    size_name: str = ""
    threshold: Optional[int] = Field(default=None, ge=0, le=100)
    wait_selectors: tuple[str, ...] = ()
    retry: int = Field(default=0, ge=0)

    @field_validator("url")
    @classmethod
    def require_relative_url(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"url must be relative to the story server: {v!r}")
        return v

    @property
    def filename(self) -> str:
        return f"{self.name}_{self.width}x{self.height}.png"


class SizeSpec(BaseModel):
    name: str = ""
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class StoryDeclaration(BaseModel):
    """A story entry as written in the case list, before size resolution."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    url: str
    sizes: Union[list[str], list[SizeSpec], SizeSpec, None] = None
    threshold: Optional[int] = Field(default=None, ge=0, le=100)
    retry: int = Field(default=0, ge=0)
    wait_selectors: list[str] = Field(default_factory=list, alias="waitSelectors")


def resolve_sizes(
    sizes: Union[list[str], list[SizeSpec], SizeSpec, None],
    default_sizes: list[ViewportSize],
) -> list[tuple[int, int, str]]:
    """Normalize any size shape to ``(width, height, source_name)`` tuples."""
    if sizes is None or sizes == []:
        return [(s.width, s.height, s.name) for s in default_sizes]
    if isinstance(sizes, SizeSpec):
        return [(sizes.width, sizes.height, sizes.name)]

    by_name = {s.name: s for s in default_sizes}
    resolved = []
    for size in sizes:
        if isinstance(size, SizeSpec):
            resolved.append((size.width, size.height, size.name))
            continue
        known = by_name.get(size)
        if known is None:
            raise SetupError(f"unknown size name {size!r}")
        resolved.append((known.width, known.height, known.name))
    return resolved


def expand_declarations(
    declarations: list[StoryDeclaration],
    default_sizes: list[ViewportSize],
) -> list[StoryCase]:
    """Expand declarations into the ordered case list consumed by the runner."""
    cases: list[StoryCase] = []
    seen: set[str] = set()
    for decl in declarations:
        for width, height, size_name in resolve_sizes(decl.sizes, default_sizes):
            try:
                case = StoryCase(
                    name=decl.name,
                    url=decl.url,
                    width=width,
                    height=height,
                    size_name=size_name,
                    threshold=decl.threshold,
                    wait_selectors=tuple(decl.wait_selectors),
                    retry=decl.retry,
                )
            except ValidationError as e:
                raise SetupError(f"invalid story {decl.name!r}: {e}") from e
            if case.filename in seen:
                raise SetupError(
                    f"duplicate story {case.name!r} at {case.width}x{case.height}"
                )
            seen.add(case.filename)
            cases.append(case)
    return cases


def load_cases(path: str | Path, default_sizes: list[ViewportSize]) -> list[StoryCase]:
    """Load and validate a JSON case list."""
    path = Path(path)
    if not path.exists():
        raise SetupError(f"Case list not found: {path}")
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SetupError(f"Case list {path} is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise SetupError(f"Case list {path} must be a JSON array")

    try:
        declarations = [StoryDeclaration.model_validate(entry) for entry in data]
    except ValidationError as e:
        raise SetupError(f"invalid story declaration in {path}: {e}") from e

    cases = expand_declarations(declarations, default_sizes)
    logger.debug("Loaded %d stories (%d cases) from %s", len(declarations), len(cases), path)
    return cases
