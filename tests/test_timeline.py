"""Tests for the timeline driver: frame counts, fades and progress."""

import threading

import pytest

from recap.exceptions import ImageLoadError
from recap.render import timeline
from recap.render.compositor import RasterSurface
from recap.render.timeline import (
    TimelineConfig,
    TimelineDriver,
    clamp_fade,
    iter_frames,
    progress_percent,
)
from tests.conftest import FakeImageLoader


def make_config(count=3, duration_ms=1000, fps=30, fade_in=0.1, fade_out=0.1):
    return TimelineConfig(
        image_count=count,
        per_image_duration_ms=duration_ms,
        fps=fps,
        fade_in_fraction=fade_in,
        fade_out_fraction=fade_out,
        width=32,
        height=18,
    )


class TestTimelineConfig:
    def test_frame_counts(self):
        config = make_config(duration_ms=3000, fps=30)

        assert config.frames_per_image == 90
        assert config.fade_in_frames == 9
        assert config.fade_out_frames == 9
        assert config.tick_seconds == pytest.approx(1 / 30)

    def test_frames_floor(self):
        # 0.05s * 30fps = 1.5 frames
        assert make_config(duration_ms=50, fps=30).frames_per_image == 1

    def test_total_duration(self):
        assert make_config(count=3, duration_ms=100).total_duration_ms == 300

    def test_zero_frames_when_duration_too_short(self):
        config = make_config(duration_ms=10, fps=30)

        assert config.frames_per_image == 0
        assert list(iter_frames(config, 0)) == []


class TestClampFade:
    def test_in_range_unchanged(self):
        assert clamp_fade(0.2) == 0.2

    def test_clamped_to_half(self):
        assert clamp_fade(0.8) == 0.5

    def test_negative_clamped_to_zero(self):
        assert clamp_fade(-0.1) == 0.0


def test_iter_frames_fade_curve():
    config = make_config(duration_ms=1000, fps=10, fade_in=0.2, fade_out=0.2)
    opacities = [f.opacity for f in iter_frames(config, 2)]

    assert len(opacities) == 10
    assert opacities[0] == 0.0
    assert opacities[1] == pytest.approx(0.5)
    assert opacities[2:9] == [1.0] * 7
    assert opacities[9] == pytest.approx(0.5)


@pytest.mark.parametrize("completed,total,expected", [
    (1, 3, 33),
    (2, 3, 67),
    (3, 3, 100),
    (1, 8, 13),
    (1, 50, 2),
])
def test_progress_percent_rounds_half_up(completed, total, expected):
    assert progress_percent(completed, total) == expected


class TestTimelineDriver:
    @pytest.mark.asyncio
    async def test_renders_every_frame_and_reports_progress(self):
        config = make_config(count=4, duration_ms=500, fps=10)
        surface = RasterSurface(32, 18)
        loader = FakeImageLoader()
        progress = []
        ticks = []

        async def sleep(seconds):
            ticks.append(seconds)

        driver = TimelineDriver(config, loader, surface, on_progress=progress.append, sleep=sleep)
        await driver.run(["a", "b", "c", "d"])

        assert surface.frames_rendered == 4 * 5
        assert len(ticks) == 20
        assert all(t == pytest.approx(0.1) for t in ticks)
        assert progress == [25, 50, 75, 100]
        assert loader.requested == [0, 1, 2, 3]
        assert driver.completed_images == 4

    @pytest.mark.asyncio
    async def test_image_failure_stops_before_later_images(self):
        config = make_config(count=5, duration_ms=200, fps=10)
        surface = RasterSurface(32, 18)
        loader = FakeImageLoader(fail_at=2)
        progress = []

        async def sleep(seconds):
            pass

        driver = TimelineDriver(config, loader, surface, on_progress=progress.append, sleep=sleep)

        with pytest.raises(ImageLoadError) as exc_info:
            await driver.run(["a", "b", "c", "d", "e"])

        assert exc_info.value.index == 3
        assert loader.requested == [0, 1, 2]
        assert progress == [20, 40]
        assert surface.frames_rendered == 2 * 2

    @pytest.mark.asyncio
    async def test_fitting_runs_off_the_loop(self, monkeypatch):
        threads = []
        fit = timeline.fit_image

        def recording_fit(image, width, height):
            threads.append(threading.get_ident())
            return fit(image, width, height)

        monkeypatch.setattr(timeline, "fit_image", recording_fit)

        async def sleep(seconds):
            pass

        driver = TimelineDriver(make_config(count=2, duration_ms=200, fps=10), FakeImageLoader(),
                                RasterSurface(32, 18), sleep=sleep)
        await driver.run(["a", "b"])

        assert len(threads) == 2
        assert threading.get_ident() not in threads
