"""Tests for background music loading. Music must never fail a recap."""

import asyncio
import tempfile
import threading
from pathlib import Path

import httpx
import pytest

from recap.render.audio_mixer import AudioMixer, AudioTrackHandle
from tests.conftest import FakeRuntime


class FailingProbeRuntime(FakeRuntime):
    def probe_duration(self, file_path: str) -> float:
        raise RuntimeError("No audio stream found")


@pytest.fixture
def music_file(tmp_path) -> Path:
    path = tmp_path / "music.mp3"
    path.write_bytes(b"ID3fake")
    return path


class TestTryLoad:
    @pytest.mark.asyncio
    async def test_no_url_means_no_music(self):
        assert await AudioMixer(runtime=FakeRuntime()).try_load(None) is None

    @pytest.mark.asyncio
    async def test_local_file(self, music_file):
        track = await AudioMixer(runtime=FakeRuntime()).try_load(str(music_file))

        assert track is not None
        assert track.path == music_file
        assert track.duration_s == 12.0
        assert track.loop is True
        assert track.owns_file is False

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self, tmp_path):
        mixer = AudioMixer(runtime=FakeRuntime())

        assert await mixer.try_load(str(tmp_path / "missing.mp3")) is None

    @pytest.mark.asyncio
    async def test_undecodable_file_returns_none(self, music_file):
        mixer = AudioMixer(runtime=FailingProbeRuntime())

        assert await mixer.try_load(str(music_file)) is None

    @pytest.mark.asyncio
    async def test_downloads_remote_track(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"ID3remote")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            mixer = AudioMixer(runtime=FakeRuntime(), http=http)
            track = await mixer.try_load("https://cdn.example.com/tet-music.mp3?v=2")

        assert track is not None
        assert track.owns_file is True
        assert track.path.suffix == ".mp3"
        assert track.path.read_bytes() == b"ID3remote"

        track.release()
        assert not track.path.exists()

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            mixer = AudioMixer(runtime=FakeRuntime(), http=http)

            assert await mixer.try_load("https://cdn.example.com/missing.mp3") is None

    @pytest.mark.asyncio
    async def test_duration_lookup_runs_off_the_loop(self, music_file):
        runtime = FakeRuntime()

        await AudioMixer(runtime=runtime).try_load(str(music_file))

        assert runtime.threads
        assert threading.get_ident() not in runtime.threads

    @pytest.mark.asyncio
    async def test_cancelled_download_leaves_no_temp_file(self, tmp_path, monkeypatch):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"ID3late")

        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            mixer = AudioMixer(runtime=FakeRuntime(), http=http)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(mixer.try_load("https://cdn.example.com/slow.mp3"), 0.05)

        assert list(tmp_path.iterdir()) == []


class TestRelease:
    def test_release_is_idempotent(self, music_file):
        track = AudioTrackHandle(path=music_file, duration_s=3.0, owns_file=True)

        track.release()
        track.release()

        assert track.released
        assert not music_file.exists()

    def test_borrowed_file_is_kept(self, music_file):
        track = AudioTrackHandle(path=music_file, duration_s=3.0)

        track.release()

        assert music_file.exists()


def test_ffmpeg_args():
    track = AudioTrackHandle(path=Path("song.mp3"), duration_s=30.0)

    assert AudioMixer.input_args(track) == ["-stream_loop", "-1", "-i", "song.mp3"]
    assert AudioMixer.output_args(1, "libopus") == [
        "-map", "1:a:0", "-c:a", "libopus", "-b:a", "128k", "-shortest",
    ]
