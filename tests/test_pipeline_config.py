"""
Tests for pipeline configuration resolution, format reconciliation and
boomerang ordering.
"""

from dataclasses import FrozenInstanceError

import pytest

from app.core.pipeline_config import (
    AspectRatio,
    OutputFormat,
    ai_aspect_ratio,
    build_boomerang_sequence,
    reconcile_output_format,
    resolve_pipeline_config,
)


class TestResolvePipelineConfig:
    """Tests for the (format, aspect ratio) table."""

    @pytest.mark.parametrize(
        "aspect,width,height",
        [(AspectRatio.SQUARE, 1080, 1080), (AspectRatio.STORY, 1080, 1920)],
    )
    def test_dimensions(self, aspect, width, height):
        config = resolve_pipeline_config(OutputFormat.IMAGE, aspect)
        assert (config.output_width, config.output_height) == (width, height)

    def test_gif_timing(self):
        config = resolve_pipeline_config(OutputFormat.GIF, AspectRatio.SQUARE)
        assert config.frame_duration == 0.5
        assert config.fps == 2

    def test_video_timing(self):
        config = resolve_pipeline_config(OutputFormat.VIDEO, AspectRatio.STORY)
        assert config.frame_duration == 0.2
        assert config.fps == 5

    def test_accepts_plain_strings(self):
        config = resolve_pipeline_config("gif", "story")
        assert config.output_format == OutputFormat.GIF
        assert config.aspect_ratio == AspectRatio.STORY

    def test_config_is_frozen(self):
        config = resolve_pipeline_config(OutputFormat.IMAGE, AspectRatio.SQUARE)
        with pytest.raises(FrozenInstanceError):
            config.output_width = 10


class TestReconcileOutputFormat:
    """Single frames are always images; several frames are never images."""

    @pytest.mark.parametrize("requested", list(OutputFormat))
    def test_single_frame_is_image(self, requested):
        assert reconcile_output_format(requested, 1) == OutputFormat.IMAGE

    @pytest.mark.parametrize("count", [2, 4, 10])
    def test_multiple_frames_upgrade_image_to_gif(self, count):
        assert reconcile_output_format(OutputFormat.IMAGE, count) == OutputFormat.GIF

    @pytest.mark.parametrize("requested", [OutputFormat.GIF, OutputFormat.VIDEO])
    @pytest.mark.parametrize("count", [2, 4, 10])
    def test_multiple_frames_keep_animated_formats(self, requested, count):
        assert reconcile_output_format(requested, count) == requested

    def test_zero_frames_rejected(self):
        with pytest.raises(ValueError):
            reconcile_output_format(OutputFormat.IMAGE, 0)


class TestBoomerangSequence:
    """Tests for boomerang play order."""

    def test_four_frames(self):
        frames = ["A", "B", "C", "D"]
        sequence = build_boomerang_sequence(frames)
        assert sequence == ["A", "B", "C", "D", "C", "B"]
        assert len(set(sequence)) == 4

    def test_endpoints_never_adjacent_to_themselves_when_looping(self):
        sequence = build_boomerang_sequence(["A", "B", "C", "D", "E"])
        looped = sequence + sequence[:1]
        assert all(a != b for a, b in zip(looped, looped[1:]))

    def test_entries_are_the_same_objects(self):
        frames = [object(), object(), object()]
        sequence = build_boomerang_sequence(frames)
        assert sequence[3] is frames[1]

    @pytest.mark.parametrize("frames", [[], ["A"], ["A", "B"]])
    def test_short_sequences_unchanged(self, frames):
        assert build_boomerang_sequence(frames) == frames


class TestAiAspectRatio:
    def test_mapping(self):
        assert ai_aspect_ratio(AspectRatio.SQUARE) == "1:1"
        assert ai_aspect_ratio("story") == "9:16"
