"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from storysnap.models.config import RunConfig, ViewportSize
from storysnap.models.story import StoryCase


# ============================================================================
# Image Fixtures
# ============================================================================


def _make_image(width: int = 10, height: int = 10, color=(255, 255, 255, 255)) -> Image.Image:
    return Image.new("RGBA", (width, height), color)


def _with_changed_pixels(image: Image.Image, count: int, color=(0, 0, 0, 255)) -> Image.Image:
    out = image.copy()
    width = out.size[0]
    for i in range(count):
        out.putpixel((i % width, i // width), color)
    return out


def _png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def _save_png(image: Image.Image, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path


@pytest.fixture
def make_image() -> Callable[..., Image.Image]:
    """Factory for a solid RGBA image: ``make_image(width, height, color)``."""
    return _make_image


@pytest.fixture
def with_changed_pixels() -> Callable[..., Image.Image]:
    """Copy an image with its first ``count`` pixels (row-major) repainted."""
    return _with_changed_pixels


@pytest.fixture
def png_bytes() -> Callable[[Image.Image], bytes]:
    """Encode an image as PNG bytes."""
    return _png_bytes


@pytest.fixture
def save_png() -> Callable[[Image.Image, Path], Path]:
    """Save an image as PNG, creating parent directories."""
    return _save_png


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    """Run config rooted in a temporary story tree."""
    stories = tmp_path / "stories"
    stories.mkdir()
    return RunConfig(
        input_dir=str(stories),
        base_url="http://127.0.0.1:6006",
        concurrency=2,
        instances=1,
        timeout_seconds=5,
        default_sizes=[
            ViewportSize(name="desktop", width=1280, height=720),
            ViewportSize(name="mobile", width=375, height=812),
        ],
    )


@pytest.fixture
def story_case() -> StoryCase:
    return StoryCase(name="button--primary", url="/iframe.html?id=button--primary", width=10, height=10)


# ============================================================================
# Playwright Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Mock Playwright page whose selectors resolve immediately."""
    page = AsyncMock()
    page.query_selector = AsyncMock(return_value=Mock())
    page.screenshot = AsyncMock(return_value=b"png")
    return page


@pytest.fixture
def mock_browser(mock_page: AsyncMock) -> AsyncMock:
    """Mock browser handing out a fresh context per ``new_context`` call."""
    browser = AsyncMock()

    async def _new_context(**kwargs):
        ctx = AsyncMock()
        ctx.new_page = AsyncMock(return_value=mock_page)
        return ctx

    browser.new_context = AsyncMock(side_effect=_new_context)
    return browser
