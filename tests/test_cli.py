import json

import numpy as np
import pytest

import cli
from core.coordinates import Plane
from core.dto import RayCastParamsDTO, ViewerSettingsDTO

from dicom_builders import image_file, rtstruct_file, square


def _write_study(folder):
    for i, z in enumerate((0.0, 2.0, 4.0)):
        pixels = np.full((8, 8), 100 * i, dtype=np.int16)
        (folder / f"ct_{i}.dcm").write_bytes(image_file(pixels, position=(-4.0, -4.0, z)))
    rois = [{"number": 1, "name": "Liver", "color": None, "contours": [square(z, half=2.0) for z in (0.0, 2.0, 4.0)]}]
    (folder / "rs.dcm").write_bytes(rtstruct_file(rois))


def test_dry_run_prints_settings(capsys):
    assert cli.main(["--input", "somewhere", "--plane", "coronal", "--dry-run"]) == 0
    out = capsys.readouterr().out
    payload = json.loads(out.split("\n", 1)[1])
    assert payload["plane"] == "coronal"
    assert payload["raycast"] is None


def test_run_viewer_sagittal(tmp_path, capsys):
    _write_study(tmp_path)
    dto = ViewerSettingsDTO(input_path=str(tmp_path), plane="sagittal", window_preset="bone", viewport=(300, 300))
    result = cli.run_viewer(dto)

    assert result["authority"].active_plane is Plane.SAGITTAL
    assert result["slice"].pixels.shape == (3, 8)
    assert result["slice"].window == (500.0, 2000.0)
    polygons = result["overlays"]["Liver"]
    assert len(polygons) == 1
    assert polygons[0].shape == (6, 2)
    assert result["rendered"] is None
    assert "Liver" in capsys.readouterr().out


def test_progress_spans_load_and_render(tmp_path):
    _write_study(tmp_path)
    events = []
    dto = ViewerSettingsDTO(input_path=str(tmp_path), raycast=RayCastParamsDTO(width=16, height=16))
    cli.run_viewer(dto, observers=[events.append])

    load = [e.percent for e in events if e.stage == "load"]
    render = [e.percent for e in events if e.stage == "render"]
    assert load[0] == 0 and max(load) == 50
    assert min(render) >= 50
    assert events[-1].stage == "render" and events[-1].percent == 100


def test_load_only_progress_reaches_100(tmp_path):
    _write_study(tmp_path)
    events = []
    cli.run_viewer(ViewerSettingsDTO(input_path=str(tmp_path)), observers=[events.append])
    assert events[-1].percent == 100


def test_cancelled_run(tmp_path):
    _write_study(tmp_path)
    with pytest.raises(InterruptedError):
        cli.run_viewer(ViewerSettingsDTO(input_path=str(tmp_path)), is_cancelled=lambda: True)


def test_main_with_render(tmp_path):
    _write_study(tmp_path)
    assert cli.main(["--input", str(tmp_path), "--render", "--rotation", "45"]) == 0


def test_main_reports_failure(tmp_path):
    assert cli.main(["--input", str(tmp_path / "missing")]) == 2
