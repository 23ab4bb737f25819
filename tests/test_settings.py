from pathlib import Path

import pytest

from tryon.core.config import presets
from tryon.core.config import settings as cfg


def test_defaults():
    s = cfg.TryOnSettings()
    assert s.smoothing_window == 3
    assert s.min_detection_interval_ms == 33.0
    assert s.refresh_interval_ms == 16.0
    assert s.lighting_interval_ms == 500.0
    assert s.lighting_sample_size == 100
    assert s.default_category == "jewelry"


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("smoothing_window: 5\nrender_mode: 3d\n", encoding="utf-8")
    monkeypatch.setenv("TOV_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.smoothing_window == 5
    assert first.render_mode == "3d"

    conf_path.write_text("smoothing_window: 2\n", encoding="utf-8")
    second = cfg.load_settings()
    assert second.smoothing_window == 2
    assert second.render_mode == "2d"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("detector: face_mesh\nsmoothing_window: 5\n", encoding="utf-8")
    monkeypatch.setenv("TOV_CONFIG", str(conf_path))
    monkeypatch.setenv("TOV_DETECTOR", "yolo_pose")

    s = cfg.load_settings()
    assert s.detector == "yolo_pose"
    assert s.smoothing_window == 5


def test_missing_file_uses_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("TOV_CONFIG", str(tmp_path / "absent.yml"))
    assert cfg.load_settings().smoothing_window == 3


@pytest.mark.parametrize(
    "field,value",
    [
        ("video_source", "rtsp"),
        ("camera_index", -1),
        ("detector", "haar"),
        ("confidence", 0.0),
        ("confidence", 1.2),
        ("keypoint_confidence", -0.1),
        ("render_mode", "4d"),
        ("smoothing_window", 0),
        ("min_detection_interval_ms", -1),
        ("refresh_interval_ms", 0),
        ("lighting_interval_ms", 0),
        ("lighting_sample_size", 0),
        ("reference_eye_distance", 0),
        ("reference_shoulder_distance", -5),
        ("default_category", "hats"),
    ],
)
def test_validation(field, value):
    with pytest.raises(ValueError):
        cfg.TryOnSettings(**{field: value})


def test_category_is_normalized():
    assert cfg.TryOnSettings(default_category=" Shoes").default_category == "shoes"


def test_settings_to_dict_round_trips_fields():
    data = cfg.settings_to_dict(cfg.TryOnSettings(render_mode="3d"))
    assert data["render_mode"] == "3d"
    assert "smoothing_window" in data


def test_presets_are_valid_settings_patches():
    base = cfg.settings_to_dict(cfg.TryOnSettings())
    listed = presets.list_presets()
    assert [p["id"] for p in listed] == ["quality", "balanced", "battery"]
    for item in listed:
        patched = cfg.TryOnSettings(**{**base, **presets.preset_patch(item["id"])})
        assert patched.smoothing_window >= 1


def test_unknown_preset():
    with pytest.raises(KeyError):
        presets.preset_patch("turbo")
