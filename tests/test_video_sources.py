import threading

import cv2
import numpy as np
import pytest

import tryon.core.video_sources.base as vs


class _FakeCap:
    def __init__(self, source, frames=2, opened=True, fps=0.0):
        self.source = source
        self._frames = frames
        self._opened = opened
        self._fps = fps
        self.pos = 0
        self.released = False
        self.props = {}

    def isOpened(self):
        return self._opened

    def read(self):
        if self.pos >= self._frames:
            return False, None
        self.pos += 1
        return True, np.full((4, 6, 3), self.pos, dtype=np.uint8)

    def set(self, prop, value):
        self.props[prop] = value
        if prop == cv2.CAP_PROP_POS_FRAMES:
            self.pos = int(value)
        return True

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self._fps
        return 0.0

    def release(self):
        self.released = True


def test_latest_frame_buffer_replaces_frames():
    buf = vs.LatestFrameBuffer()
    assert buf.snapshot() is None
    assert buf.frame_size() is None

    first = np.zeros((48, 64, 3), dtype=np.uint8)
    buf.update(first)
    assert buf.snapshot() is first
    assert buf.frame_size() == (64, 48)
    assert buf.seq == 1

    buf.update(np.ones((10, 20, 3), dtype=np.uint8))
    assert buf.snapshot() is not first
    assert buf.frame_size() == (20, 10)

    buf.clear()
    assert buf.snapshot() is None
    assert buf.seq == 3


def test_latest_frame_buffer_concurrent_updates():
    buf = vs.LatestFrameBuffer()

    def _writer():
        for _ in range(200):
            buf.update(np.zeros((2, 2, 3), dtype=np.uint8))

    threads = [threading.Thread(target=_writer) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert buf.seq == 800


def test_opencv_source_raises_when_not_opened(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _FakeCap(src, opened=False))
    with pytest.raises(RuntimeError):
        vs.OpenCVSource("missing.mp4")


def test_opencv_source_reads_until_exhausted(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _FakeCap(src, frames=1))
    src = vs.OpenCVSource(0)
    assert src.read() is not None
    assert src.read() is None
    src.close()
    assert src.cap.released is True


def test_webcam_source_requests_low_latency_capture(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _FakeCap(src))
    cam = vs.WebcamSource(1, width=320, height=240)
    assert cam.cap.source == 1
    assert cam.cap.props[cv2.CAP_PROP_BUFFERSIZE] == 1
    assert cam.cap.props[cv2.CAP_PROP_FRAME_WIDTH] == 320
    assert cam.cap.props[cv2.CAP_PROP_FRAME_HEIGHT] == 240


def test_webcam_source_ignores_refused_properties(monkeypatch: pytest.MonkeyPatch):
    class _Stubborn(_FakeCap):
        def set(self, prop, value):
            raise cv2.error("unsupported")

    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _Stubborn(src))
    cam = vs.WebcamSource()
    assert cam.read() is not None


def test_file_source_loops_at_eof(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _FakeCap(src, frames=2))
    src = vs.FileSource("clip.mp4")
    values = [int(src.read()[0, 0, 0]) for _ in range(5)]
    assert values == [1, 2, 1, 2, 1]


def test_file_source_paces_to_source_fps(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _FakeCap(src, frames=10, fps=25.0))
    sleeps: list[float] = []
    monkeypatch.setattr(vs.time, "sleep", lambda s: sleeps.append(s))
    src = vs.FileSource("clip.mp4")
    for _ in range(3):
        src.read()
    assert sleeps
    assert max(sleeps) <= 3 / 25.0


def test_file_source_gives_up_when_rewind_fails(monkeypatch: pytest.MonkeyPatch):
    class _NoSeek(_FakeCap):
        def set(self, prop, value):
            return False

    monkeypatch.setattr(vs.cv2, "VideoCapture", lambda src: _NoSeek(src, frames=1))
    src = vs.FileSource("clip.mp4")
    assert src.read() is not None
    assert src.read() is None
