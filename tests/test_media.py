from __future__ import annotations

import pytest

from conftest import clip, image_scene, snapshot
from sceneline import media


class FakeClip:
    opened = []

    def __init__(self, path):
        self.path = path
        self.duration = 2.5
        self.closed = False
        FakeClip.opened.append(self)

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def fake_moviepy(monkeypatch):
    FakeClip.opened = []
    monkeypatch.setattr(media, "AudioFileClip", FakeClip)
    monkeypatch.setattr(media, "VideoFileClip", FakeClip)


def test_measure_duration_reads_and_closes(tmp_path):
    path = tmp_path / "voice.mp3"
    path.write_bytes(b"audio")
    assert media.measure_duration_ms(path) == 2500
    assert FakeClip.opened[0].closed


def test_measure_duration_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        media.measure_duration_ms(tmp_path / "nope.mp3")


def test_fill_missing_durations_only_touches_local_clips(tmp_path):
    (tmp_path / "audio").mkdir()
    (tmp_path / "audio" / "n-1.mp3").write_bytes(b"audio")
    project = snapshot([
        image_scene(1, narration_clips=[clip("local", None, url="audio/n-1.mp3")]),
        image_scene(2, narration_clips=[clip("remote", None)]),
        image_scene(3, narration_clips=[clip("known", 1200, url="audio/n-1.mp3")]),
    ])

    filled = media.fill_missing_durations(project, tmp_path)
    assert filled.scenes[0].narration_clips[0].duration_ms == 2500
    assert filled.scenes[1].narration_clips[0].duration_ms is None
    assert filled.scenes[2].narration_clips[0].duration_ms == 1200
    assert project.scenes[0].narration_clips[0].duration_ms is None
