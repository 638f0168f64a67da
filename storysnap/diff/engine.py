"""Diff engine: exact pixel-ratio diff plus perceptual-hash distance.

The two metrics are always computed together. The pixel metric decides the
case status; the perceptual distance is reported alongside it so reviewers can
tell real regressions from anti-aliasing or sub-pixel noise.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

import imagehash
import numpy as np
from PIL import Image, UnidentifiedImageError

from storysnap.errors import BaselineMissingError, DiffError
from storysnap.models.result import PerceptualDiffResult, PixelDiffResult

logger = logging.getLogger(__name__)

DIFF_MARKER_COLOR = (255, 0, 255, 255)
PERCEPTUAL_SIZE = (256, 256)
DEFAULT_PERCEPTUAL_DISTANCE = 10


def pixel_diff(
    baseline: Image.Image,
    candidate: Image.Image,
    threshold: float,
    marker: tuple[int, int, int, int] = DIFF_MARKER_COLOR,
) -> tuple[PixelDiffResult, Optional[Image.Image]]:
    """Compare every RGBA pixel for exact equality.

    A candidate of a different size is first scaled to the baseline's size with
    nearest-neighbour resampling. ``threshold`` is the allowed fraction of
    mismatched pixels (clamped to >= 0); a ratio equal to it passes. The diff
    image is only built when the comparison fails.
    """
    baseline = baseline.convert("RGBA")
    candidate = candidate.convert("RGBA")
    if candidate.size != baseline.size:
        logger.debug("Resizing candidate %s to baseline %s", candidate.size, baseline.size)
        candidate = candidate.resize(baseline.size, Image.Resampling.NEAREST)
    if candidate.size != baseline.size:
        raise DiffError("size mismatch after resize")

    base_px = np.asarray(baseline)
    cand_px = np.asarray(candidate)
    mismatch = np.any(base_px != cand_px, axis=-1)

    total = mismatch.size
    if total == 0:
        raise DiffError("baseline image is empty")
    ratio = int(np.count_nonzero(mismatch)) / total
    passed = ratio <= max(0.0, threshold)

    diff_image = None
    if not passed:
        marked = base_px.copy()
        marked[mismatch] = marker
        diff_image = Image.fromarray(marked)

    return PixelDiffResult(passed=passed, ratio_diff=ratio), diff_image


def perceptual_hash(image: Image.Image) -> imagehash.ImageHash:
    small = image.convert("RGB").resize(PERCEPTUAL_SIZE, Image.Resampling.LANCZOS)
    return imagehash.phash(small)


def perceptual_diff(
    baseline: Image.Image,
    candidate: Image.Image,
    allowed_distance: int = DEFAULT_PERCEPTUAL_DISTANCE,
) -> PerceptualDiffResult:
    """Hamming distance between the perceptual hashes of both images."""
    distance = int(perceptual_hash(baseline) - perceptual_hash(candidate))
    return PerceptualDiffResult(passed=distance <= allowed_distance, hamming_distance=distance)


def compare_images(
    baseline: Image.Image,
    candidate: Image.Image,
    pixel_threshold: float,
    perceptual_distance: int = DEFAULT_PERCEPTUAL_DISTANCE,
    marker: tuple[int, int, int, int] = DIFF_MARKER_COLOR,
) -> tuple[PixelDiffResult, PerceptualDiffResult, Optional[Image.Image]]:
    try:
        px, diff_image = pixel_diff(baseline, candidate, pixel_threshold, marker)
        ph = perceptual_diff(baseline, candidate, perceptual_distance)
    except DiffError:
        raise
    except (ValueError, OSError) as e:
        raise DiffError(f"comparison failed: {e}") from e
    return px, ph, diff_image


def decode_png(data: bytes, label: str = "image") -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise DiffError(f"could not decode {label}: {e}") from e
    return image


def compare_files(
    baseline_path: Path,
    candidate: bytes,
    diff_path: Path,
    pixel_threshold: float,
    perceptual_distance: int = DEFAULT_PERCEPTUAL_DISTANCE,
    marker: tuple[int, int, int, int] = DIFF_MARKER_COLOR,
) -> tuple[PixelDiffResult, PerceptualDiffResult]:
    """Compare captured PNG bytes against the baseline file.

    Raises BaselineMissingError when the baseline does not exist; this is
    checked before anything is decoded. The diff artifact is written to
    ``diff_path`` only when the pixel comparison fails.
    """
    if not baseline_path.is_file():
        raise BaselineMissingError(baseline_path)

    try:
        baseline_bytes = baseline_path.read_bytes()
    except OSError as e:
        raise DiffError(f"could not read baseline {baseline_path}: {e}") from e
    base_image = decode_png(baseline_bytes, f"baseline {baseline_path}")
    cand_image = decode_png(candidate, "captured screenshot")

    px, ph, diff_image = compare_images(
        base_image, cand_image, pixel_threshold, perceptual_distance, marker
    )

    if diff_image is not None:
        try:
            diff_path.parent.mkdir(parents=True, exist_ok=True)
            diff_image.save(diff_path, format="PNG")
        except OSError as e:
            raise DiffError(f"could not write diff image {diff_path}: {e}") from e
        px.diff_image_path = str(diff_path)
        logger.debug("Wrote diff image %s (ratio %.6f)", diff_path, px.ratio_diff)

    return px, ph
