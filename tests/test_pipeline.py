"""End-to-end tests for the surface replacement pipeline."""

import numpy as np
import pytest

from surface_swap import FrameResult, PipelineConfig, SurfaceReplacementPipeline
from surface_swap.modules import TrackingState
from surface_swap.pipeline import merge_overlays

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


@pytest.fixture
def pipeline():
    p = SurfaceReplacementPipeline(PipelineConfig(frame_width=320, frame_height=240))
    yield p
    p.close()


def test_overlay_is_drawn_inside_placement(pipeline, sequence, corners, make_solid) -> None:
    """The marked quad shows the ad; pixels far outside keep the frame."""
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(16, 16, RED))

    with sequence.frame() as frame:
        result = pipeline.process_frame(frame)
        original = frame.data.copy()

    with result.output as output:
        assert isinstance(result, FrameResult)
        assert result.frame_index == 0
        assert result.overlays_drawn == 1
        assert result.states["board"] is TrackingState.ACTIVE
        assert tuple(output.data[120, 160]) == RED
        np.testing.assert_array_equal(output.data[5, 5], original[5, 5])

    assert pipeline.frame_index == 1


def test_input_frame_is_not_modified(pipeline, sequence, corners, make_solid) -> None:
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(8, 8, RED))

    with sequence.frame() as frame:
        before = frame.data.copy()
        result = pipeline.process_frame(frame)
        np.testing.assert_array_equal(frame.data, before)
    result.output.release()


def test_placement_follows_motion(pipeline, sequence, corners, make_solid) -> None:
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(8, 8, RED))

    for i in range(1, 6):
        with sequence.frame(2 * i, 0) as frame:
            result = pipeline.process_frame(frame)
        result.output.release()

    tracked = result.corners["board"]
    assert tracked[0].x > corners[0][0] + 4
    assert pipeline.registry.get_placement("board").corners == tracked


def test_ad_loaded_by_id(pipeline, sequence, corners, tmp_path) -> None:
    from PIL import Image

    path = tmp_path / "ad.png"
    Image.new("RGBA", (10, 10), BLUE).save(path)
    pipeline.load_ad("ad-1", str(path))

    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad-1", corners, first)
    with sequence.frame() as frame:
        result = pipeline.process_frame(frame)

    with result.output as output:
        assert tuple(output.data[120, 160]) == BLUE


def test_missing_ad_leaves_frame_unchanged(pipeline, sequence, corners) -> None:
    """An unknown ad disables the warp; the frame passes through."""
    with sequence.frame() as first:
        pipeline.mark_complete("board", "missing", corners, first)

    with sequence.frame() as frame:
        result = pipeline.process_frame(frame)
        np.testing.assert_array_equal(result.output.data, frame.data)

    assert result.overlays_drawn == 0
    result.output.release()


def test_two_placements_are_both_drawn(pipeline, sequence, make_solid) -> None:
    left = [(20, 40), (120, 40), (120, 140), (20, 140)]
    right = [(180, 60), (300, 60), (300, 200), (180, 200)]
    with sequence.frame() as first:
        pipeline.mark_complete("left", "a", left, first, source_image=make_solid(8, 8, RED))
        pipeline.mark_complete("right", "b", right, first, source_image=make_solid(8, 8, BLUE))

    with sequence.frame() as frame:
        result = pipeline.process_frame(frame)

    with result.output as output:
        assert result.overlays_drawn == 2
        assert tuple(output.data[90, 70]) == RED
        assert tuple(output.data[130, 240]) == BLUE


def test_stop_returns_none(pipeline, sequence, corners, make_solid) -> None:
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(8, 8, RED))

    pipeline.stop()

    with sequence.frame() as frame:
        assert pipeline.process_frame(frame) is None
    assert pipeline.stopped
    assert pipeline.frame_index == 0


def test_run_stops_mid_stream(pipeline, sequence) -> None:
    frames = [sequence.frame() for _ in range(5)]
    seen = []

    for result in pipeline.run(frames):
        seen.append(result.frame_index)
        result.output.release()
        if len(seen) == 2:
            pipeline.stop()

    assert seen == [0, 1]
    for frame in frames:
        frame.release()


def test_reset_releases_placements(pipeline, sequence, corners, make_solid) -> None:
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(8, 8, RED))
    tracker = pipeline.registry.get_tracker("board")
    pipeline.stop()

    pipeline.reset()

    assert tracker.state is TrackingState.IDLE
    assert len(pipeline.registry) == 0
    assert not pipeline.stopped
    assert pipeline.frame_index == 0
    assert not pipeline.compositor.has_previous


def test_tracking_lost_reaches_callback(sequence, corners, failing_cv, make_solid) -> None:
    lost = []
    pipeline = SurfaceReplacementPipeline(cv=failing_cv, on_tracking_lost=lost.append)
    with sequence.frame() as first:
        pipeline.mark_complete("board", "ad", corners, first, source_image=make_solid(8, 8, RED))

    for _ in range(8):
        with sequence.frame() as frame:
            result = pipeline.process_frame(frame)
        result.output.release()

    assert lost == ["board"]
    assert result.states["board"] is TrackingState.LOST
    pipeline.close()


def test_merge_overlays_over_operator() -> None:
    bottom = np.zeros((1, 3, 4), dtype=np.uint8)
    bottom[0, 0] = RED
    bottom[0, 1] = RED
    top = np.zeros((1, 3, 4), dtype=np.uint8)
    top[0, 1] = BLUE
    top[0, 2] = (0, 0, 255, 128)

    merged = merge_overlays(bottom, top)

    assert tuple(merged[0, 0]) == RED
    assert tuple(merged[0, 1]) == BLUE
    assert tuple(merged[0, 2]) == (0, 0, 255, 128)


def test_merge_overlays_transparent_top_keeps_bottom() -> None:
    bottom = np.zeros((1, 1, 4), dtype=np.uint8)
    bottom[0, 0] = (200, 0, 0, 255)
    top = np.zeros((1, 1, 4), dtype=np.uint8)
    top[0, 0] = (0, 200, 0, 0)

    merged = merge_overlays(bottom, top)

    assert tuple(merged[0, 0]) == (200, 0, 0, 255)


def test_failing_placement_is_skipped(pipeline, sequence, make_solid, monkeypatch) -> None:
    """An error in one placement drops only that overlay; the others and the frame still render."""
    left = [(20, 40), (120, 40), (120, 140), (20, 140)]
    right = [(180, 60), (300, 60), (300, 200), (180, 200)]
    with sequence.frame() as first:
        pipeline.mark_complete("left", "a", left, first, source_image=make_solid(8, 8, RED))
        pipeline.mark_complete("right", "b", right, first, source_image=make_solid(8, 8, BLUE))

    def broken_track(frame):
        raise RuntimeError("flow exploded")

    monkeypatch.setattr(pipeline.registry.get_tracker("left"), "track", broken_track)

    with sequence.frame() as frame:
        result = pipeline.process_frame(frame)
        original = frame.data.copy()

    with result.output as output:
        assert result.overlays_drawn == 1
        assert "left" not in result.corners
        np.testing.assert_array_equal(output.data[90, 70], original[90, 70])
        assert tuple(output.data[130, 240]) == BLUE
    assert pipeline.frame_index == 1
