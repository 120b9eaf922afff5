import json

import pytest

from stageflow.utils.file_management import FileManager


def test_unique_target(tmp_path):
    target = tmp_path / "IMG_1-DxO_DeepPRIME.dng"
    assert FileManager.unique_target(target) == target
    target.write_text("a")
    assert FileManager.unique_target(target).name == "IMG_1-DxO_DeepPRIME_01.dng"
    (tmp_path / "IMG_1-DxO_DeepPRIME_01.dng").write_text("b")
    assert FileManager.unique_target(target).name == "IMG_1-DxO_DeepPRIME_02.dng"


def test_unique_target_exhausted(tmp_path):
    target = tmp_path / "pano.tif"
    target.write_text("x")
    for n in range(1, 4):
        (tmp_path / f"pano_{n:02d}.tif").write_text("x")
    with pytest.raises(FileExistsError):
        FileManager.unique_target(target, limit=3)


def test_move_file_never_overwrites(tmp_path):
    stage = tmp_path / "stage"
    stage.mkdir()
    dest = tmp_path / "photos"
    src = stage / "pano.tif"
    src.write_text("new")
    FileManager.ensure_directory(dest)
    (dest / "pano.tif").write_text("old")
    moved = FileManager.move_file(src, dest)
    assert moved == dest / "pano_01.tif"
    assert moved.read_text() == "new"
    assert (dest / "pano.tif").read_text() == "old"
    assert not src.exists()


def test_move_harvester_reports_moves(tmp_path):
    stage = tmp_path / "stage"
    stage.mkdir()
    src = stage / "a.tif"
    src.write_text("x")
    moves = []
    harvest = FileManager.make_move_harvester(tmp_path / "out", on_moved=lambda s, t: moves.append((s, t)))
    assert harvest(src) is True
    assert moves == [(src, tmp_path / "out" / "a.tif")]
    with pytest.raises(FileNotFoundError):
        harvest(stage / "gone.tif")


def test_save_json_creates_parent(tmp_path):
    path = tmp_path / "reports" / "run.json"
    FileManager.save_json({"state": "satisfied", "harvested": 2}, path)
    assert json.loads(path.read_text()) == {"state": "satisfied", "harvested": 2}
