import asyncio
import sys
from types import SimpleNamespace

import numpy as np
import pytest

import tryon.core.detectors.face_mesh as face_mesh_mod
import tryon.core.detectors.yolo as yolo_mod
from tryon.core.errors import InitializationFailure
from tryon.core.types import LandmarkKind


class _FakeTensor:
    def __init__(self, arr):
        self._arr = np.asarray(arr, dtype=np.float32)

    def cpu(self):
        return self

    def numpy(self):
        return self._arr


class _FakeBoxes:
    def __init__(self, conf):
        self.conf = _FakeTensor(conf)

    def __len__(self):
        return int(self.conf.numpy().shape[0])


def _person_keypoints(offset=0.0, score=0.9):
    kp = np.zeros((17, 3), dtype=np.float32)
    for i in range(17):
        kp[i] = (100.0 + i * 10.0 + offset, 50.0 + i * 5.0, score)
    return kp


class _FakeYOLO:
    instances: list["_FakeYOLO"] = []

    def __init__(self, model_name, task=None):
        self.model_name = model_name
        self.task = task
        self.predict_calls = []
        self.results = []
        _FakeYOLO.instances.append(self)

    def predict(self, frame, **kwargs):
        self.predict_calls.append(kwargs)
        return self.results


def test_landmarks_from_keypoints_maps_body_groups():
    lm = yolo_mod.landmarks_from_keypoints(_person_keypoints(), confidence=0.8)
    assert lm.kind is LandmarkKind.BODY
    assert lm.group("left_shoulder")[0].x == pytest.approx(150.0)
    assert lm.group("right_ankle")[0].y == pytest.approx(130.0)
    # Face keypoints (nose, eyes, ears) are not body groups.
    assert "nose" not in lm.groups
    assert lm.confidence == pytest.approx(0.8)


def test_low_score_and_missing_keypoints_are_dropped():
    kp = _person_keypoints()
    kp[5, 2] = 0.1
    kp[6, :2] = 0.0
    lm = yolo_mod.landmarks_from_keypoints(kp, confidence=0.8, keypoint_confidence=0.3)
    assert "left_shoulder" not in lm.groups
    assert "right_shoulder" not in lm.groups
    assert lm.has("left_hip")


def test_yolo_detector_picks_most_confident_person(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseLandmarkDetector("pose.pt", conf=0.4)
    assert det.is_ready() is False

    asyncio.run(det.initialize())
    assert det.is_ready() is True
    model = det.model
    assert model.task == "pose"

    kpts = np.stack([_person_keypoints(), _person_keypoints(offset=1000.0)])
    model.results = [SimpleNamespace(boxes=_FakeBoxes([0.5, 0.9]), keypoints=SimpleNamespace(data=_FakeTensor(kpts)))]
    lm = asyncio.run(det.detect(np.zeros((10, 10, 3), dtype=np.uint8)))
    assert lm is not None
    assert lm.confidence == pytest.approx(0.9)
    assert lm.group("left_shoulder")[0].x == pytest.approx(1150.0)
    assert model.predict_calls[0]["classes"] == [0]
    assert model.predict_calls[0]["conf"] == 0.4

    det.cleanup()
    assert det.is_ready() is False


def test_yolo_detector_returns_none_without_people(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseLandmarkDetector()
    asyncio.run(det.initialize())
    frame = np.zeros((10, 10, 3), dtype=np.uint8)
    assert asyncio.run(det.detect(frame)) is None

    det.model.results = [SimpleNamespace(boxes=_FakeBoxes([]), keypoints=None)]
    assert asyncio.run(det.detect(frame)) is None


def test_yolo_load_failure_is_initialization_failure(monkeypatch: pytest.MonkeyPatch):
    def _boom(*_a, **_k):
        raise FileNotFoundError("no such model")

    monkeypatch.setattr(yolo_mod, "YOLO", _boom)
    det = yolo_mod.YoloPoseLandmarkDetector("missing.pt")
    with pytest.raises(InitializationFailure):
        asyncio.run(det.initialize())
    assert det.is_ready() is False


def test_face_mesh_grouping_is_normalized_and_keeps_full_mesh():
    points = [(i / 500.0, i / 1000.0, 0.0) for i in range(468)]
    lm = face_mesh_mod.landmarks_from_face_mesh(points)
    assert lm.normalized is True
    assert lm.kind is LandmarkKind.FACE
    assert len(lm.group("mesh")) == 468
    assert len(lm.group("face_oval")) == len(face_mesh_mod.FACE_MESH_GROUPS["face_oval"])
    assert lm.group("left_eye")[0].x == pytest.approx(33 / 500.0)
    assert lm.confidence == pytest.approx(face_mesh_mod.FACE_MESH_CONFIDENCE)


def test_face_mesh_skips_indices_past_the_point_list():
    lm = face_mesh_mod.landmarks_from_face_mesh([(0.5, 0.5, 0.0)] * 40)
    assert "right_eye" not in lm.groups
    assert len(lm.group("left_eye")) == 2
    assert len(lm.group("mesh")) == 40


class _FakeFaceMesh:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False
        self.faces = None

    def process(self, rgb):
        return SimpleNamespace(multi_face_landmarks=self.faces)

    def close(self):
        self.closed = True


def _fake_mediapipe():
    return SimpleNamespace(solutions=SimpleNamespace(face_mesh=SimpleNamespace(FaceMesh=_FakeFaceMesh)))


def test_face_mesh_detector_lifecycle(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(face_mesh_mod, "_load_mediapipe", _fake_mediapipe)
    det = face_mesh_mod.FaceMeshLandmarkDetector(min_detection_confidence=0.6)
    asyncio.run(det.initialize())
    assert det.is_ready() is True
    mesh = det._mesh
    assert mesh.kwargs["max_num_faces"] == 1
    assert mesh.kwargs["min_detection_confidence"] == 0.6

    frame = np.zeros((20, 20, 3), dtype=np.uint8)
    assert asyncio.run(det.detect(frame)) is None

    pts = [SimpleNamespace(x=0.5, y=0.5, z=0.0) for _ in range(468)]
    mesh.faces = [SimpleNamespace(landmark=pts)]
    lm = asyncio.run(det.detect(frame))
    assert lm is not None and lm.kind is LandmarkKind.FACE

    det.cleanup()
    assert mesh.closed is True
    assert det.is_ready() is False


def test_missing_mediapipe_is_initialization_failure(monkeypatch: pytest.MonkeyPatch):
    # A None entry makes the import raise ModuleNotFoundError.
    monkeypatch.setitem(sys.modules, "mediapipe", None)
    det = face_mesh_mod.FaceMeshLandmarkDetector()
    with pytest.raises(InitializationFailure):
        asyncio.run(det.initialize())
