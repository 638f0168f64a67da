"""Tests for the pixel/perceptual diff engine."""

from pathlib import Path

import pytest
from PIL import Image, ImageOps

from storysnap.diff.engine import (
    DIFF_MARKER_COLOR,
    compare_files,
    compare_images,
    perceptual_diff,
    pixel_diff,
)
from storysnap.errors import BaselineMissingError, DiffError


def _gradient(width: int = 64, height: int = 64) -> Image.Image:
    image = Image.new("RGBA", (width, height))
    for x in range(width):
        for y in range(height):
            image.putpixel((x, y), (x * 4 % 256, y * 4 % 256, (x + y) % 256, 255))
    return image


class TestPixelDiff:
    """Tests for the exact pixel-ratio metric."""

    def test_identical_images(self, make_image):
        result, diff_image = pixel_diff(make_image(), make_image(), threshold=0.0)
        assert result.passed is True
        assert result.ratio_diff == 0.0
        assert diff_image is None

    def test_ratio_is_exact(self, make_image, with_changed_pixels):
        base = make_image(10, 10)
        cand = with_changed_pixels(base, 7)
        result, _ = pixel_diff(base, cand, threshold=0.0)
        assert result.ratio_diff == 7 / 100
        assert result.passed is False

    def test_ratio_equal_to_threshold_passes(self, make_image, with_changed_pixels):
        base = make_image(10, 10)
        cand = with_changed_pixels(base, 5)
        result, diff_image = pixel_diff(base, cand, threshold=5 / 100)
        assert result.passed is True
        assert diff_image is None

    def test_ratio_above_threshold_fails(self, make_image, with_changed_pixels):
        base = make_image(10, 10)
        cand = with_changed_pixels(base, 6)
        result, diff_image = pixel_diff(base, cand, threshold=5 / 100)
        assert result.passed is False
        assert diff_image is not None

    def test_negative_threshold_clamped_to_zero(self, make_image):
        result, _ = pixel_diff(make_image(), make_image(), threshold=-1.0)
        assert result.passed is True

    def test_alpha_channel_compared(self, make_image, with_changed_pixels):
        base = make_image(4, 4, (10, 20, 30, 255))
        cand = with_changed_pixels(base, 1, (10, 20, 30, 128))
        result, _ = pixel_diff(base, cand, threshold=0.0)
        assert result.ratio_diff == 1 / 16

    def test_diff_image_marks_mismatches(self, make_image, with_changed_pixels):
        base = make_image(4, 4, (255, 255, 255, 255))
        cand = with_changed_pixels(base, 2)
        _, diff_image = pixel_diff(base, cand, threshold=0.0)
        assert diff_image.size == (4, 4)
        assert diff_image.getpixel((0, 0)) == DIFF_MARKER_COLOR
        assert diff_image.getpixel((1, 0)) == DIFF_MARKER_COLOR
        assert diff_image.getpixel((2, 0)) == (255, 255, 255, 255)

    def test_custom_marker_color(self, make_image, with_changed_pixels):
        base = make_image(4, 4)
        cand = with_changed_pixels(base, 1)
        _, diff_image = pixel_diff(base, cand, threshold=0.0, marker=(0, 255, 0, 255))
        assert diff_image.getpixel((0, 0)) == (0, 255, 0, 255)

    def test_candidate_resized_to_baseline(self, make_image):
        base = make_image(10, 10)
        cand = make_image(20, 20)
        result, _ = pixel_diff(base, cand, threshold=0.0)
        assert result.passed is True
        assert result.ratio_diff == 0.0

    def test_rgb_inputs_are_normalized(self):
        base = Image.new("RGB", (5, 5), (1, 2, 3))
        cand = Image.new("RGBA", (5, 5), (1, 2, 3, 255))
        result, _ = pixel_diff(base, cand, threshold=0.0)
        assert result.ratio_diff == 0.0


class TestPerceptualDiff:
    """Tests for the perceptual-hash metric."""

    def test_identical_images_distance_zero(self):
        image = _gradient()
        result = perceptual_diff(image, image.copy(), allowed_distance=0)
        assert result.hamming_distance == 0
        assert result.passed is True

    def test_inverted_image_fails(self):
        base = _gradient()
        cand = ImageOps.invert(base.convert("RGB"))
        result = perceptual_diff(base, cand, allowed_distance=10)
        assert result.hamming_distance > 10
        assert result.passed is False

    def test_small_change_tolerated(self, with_changed_pixels):
        base = _gradient()
        cand = with_changed_pixels(base, 1)
        result = perceptual_diff(base, cand, allowed_distance=10)
        assert result.passed is True


class TestCompareImages:
    """Both metrics are computed together and independently."""

    def test_perceptual_reported_when_pixel_fails(self, with_changed_pixels):
        base = _gradient()
        cand = with_changed_pixels(base, 200)
        px, ph, diff_image = compare_images(base, cand, pixel_threshold=0.0, perceptual_distance=64)
        assert px.passed is False
        assert ph.passed is True
        assert diff_image is not None


class TestCompareFiles:
    """Tests for baseline file handling and diff artifacts."""

    def test_identical_writes_no_artifact(self, tmp_path: Path, make_image, png_bytes, save_png):
        baseline = save_png(make_image(), tmp_path / "base" / "a_10x10.png")
        diff_path = tmp_path / "diff" / "a_10x10.png"

        px, ph = compare_files(baseline, png_bytes(make_image()), diff_path, 0.0)

        assert px.passed is True
        assert px.ratio_diff == 0.0
        assert px.diff_image_path is None
        assert ph.hamming_distance == 0
        assert not diff_path.exists()

    def test_failure_writes_artifact(
        self, tmp_path: Path, make_image, with_changed_pixels, png_bytes, save_png,
    ):
        base_image = make_image()
        baseline = save_png(base_image, tmp_path / "base" / "a_10x10.png")
        diff_path = tmp_path / "diff" / "a_10x10.png"

        px, _ = compare_files(baseline, png_bytes(with_changed_pixels(base_image, 3)), diff_path, 0.0)

        assert px.passed is False
        assert px.diff_image_path == str(diff_path)
        assert diff_path.exists()
        with Image.open(diff_path) as written:
            assert written.convert("RGBA").getpixel((0, 0)) == DIFF_MARKER_COLOR

    def test_missing_baseline_raises_dedicated_error(self, tmp_path: Path, make_image, png_bytes):
        diff_path = tmp_path / "diff" / "a_10x10.png"
        with pytest.raises(BaselineMissingError):
            compare_files(tmp_path / "missing.png", png_bytes(make_image()), diff_path, 0.0)
        assert not diff_path.exists()

    def test_missing_baseline_checked_before_decode(self, tmp_path: Path):
        with pytest.raises(BaselineMissingError):
            compare_files(tmp_path / "missing.png", b"not a png", tmp_path / "d.png", 0.0)

    def test_corrupt_candidate_is_diff_error(self, tmp_path: Path, make_image, save_png):
        baseline = save_png(make_image(), tmp_path / "a.png")
        with pytest.raises(DiffError):
            compare_files(baseline, b"not a png", tmp_path / "d.png", 0.0)

    def test_corrupt_baseline_is_diff_error(self, tmp_path: Path, make_image, png_bytes):
        baseline = tmp_path / "a.png"
        baseline.write_bytes(b"garbage")
        with pytest.raises(DiffError):
            compare_files(baseline, png_bytes(make_image()), tmp_path / "d.png", 0.0)
