"""CLI subcommands against a temp catalog; JSON on stdout."""

import json

import pytest
from PIL import Image

from catalog.cli import main
from catalog.db.sqlite_client import CatalogDB
from catalog.parser.media import FileInfo


@pytest.fixture
def catalog_path(tmp_path):
    path = str(tmp_path / "cli.db")
    with CatalogDB(path) as db:
        info = FileInfo(size=1, created_at=1000, modified_at=1000)
        parent = db.upsert_asset("/media-library", "dragon.png", "image", info, {"fileSize": 1})
        child = db.upsert_asset("/media-library", "dragon_v2.png", "image", info, {"fileSize": 1})
        db.set_metadata_field(child.id, "inputs", [parent.id])
        db.upsert_asset("/media-library", "clip.mp4", "video", info, {"fileSize": 1})
    return path, parent.id, child.id


def _run(capsys, argv):
    main(argv)
    return json.loads(capsys.readouterr().out)


def test_search(capsys, catalog_path):
    path, _, _ = catalog_path
    found = _run(capsys, ["--db", path, "search", "dragon", "--root", "/media-library"])
    assert sorted(a["path"] for a in found) == ["dragon.png", "dragon_v2.png"]

    videos = _run(capsys, ["--db", path, "search", "--type", "video"])
    assert [a["path"] for a in videos] == ["clip.mp4"]


def test_related_and_lineage(capsys, catalog_path):
    path, parent_id, child_id = catalog_path
    related = _run(capsys, ["--db", path, "search", "--related", parent_id])
    assert [a["id"] for a in related] == [parent_id, child_id]

    lineage = _run(capsys, ["--db", path, "lineage", child_id])
    assert [a["id"] for a in lineage] == [child_id, parent_id]


def test_stats(capsys, catalog_path):
    path, _, _ = catalog_path
    stats = _run(capsys, ["--db", path, "stats", "--root", "/media-library"])
    assert stats["total_assets"] == 3
    assert stats["by_type"] == {"image": 2, "video": 1}


def test_scan(capsys, tmp_path):
    root = tmp_path / "lib"
    root.mkdir()
    Image.new("RGB", (4, 4)).save(root / "a.png")
    (root / "readme.txt").write_text("x")

    stats = _run(capsys, ["--db", str(tmp_path / "scan.db"), "scan", str(root), "--timeout", "15"])
    assert stats["totalFiles"] == 1
    assert stats["status"] == "idle"


def test_relative_db_path_is_relative_to_working_directory(capsys, tmp_path, monkeypatch):
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    stats = _run(capsys, ["--db", "relative.db", "stats"])
    assert stats["total_assets"] == 0
    assert (workdir / "relative.db").exists()
