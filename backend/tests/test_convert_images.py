from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from wallpaper.tools.convert_images import available_formats, convert_tree, main, write_manifest


def _make_tree(root: Path) -> Path:
    src = root / "images"
    (src / "pc").mkdir(parents=True)
    (src / "pe").mkdir(parents=True)
    Image.new("RGBA", (16, 9), (200, 10, 10, 128)).save(src / "pc" / "wide.png")
    Image.new("RGB", (9, 16), (10, 200, 10)).save(src / "pe" / "tall.jpg")
    (src / "pe" / "notes.txt").write_text("not an image", encoding="utf-8")
    return src


def test_convert_tree_writes_variants(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    out = tmp_path / "converted"

    report = convert_tree(src, out, formats=["webp", "jpeg"])

    assert report.ok
    assert report.converted == 4
    assert (out / "pc" / "webp" / "wide.webp").is_file()
    assert (out / "pc" / "jpeg" / "wide.jpg").is_file()
    assert (out / "pe" / "webp" / "tall.webp").is_file()
    assert (out / "pe" / "jpeg" / "tall.jpg").is_file()
    assert report.manifest_entries == ["pc/wide.png", "pe/tall.jpg"]

    with Image.open(out / "pc" / "jpeg" / "wide.jpg") as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert img.size == (16, 9)


def test_convert_tree_skip_existing(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    out = tmp_path / "converted"

    convert_tree(src, out, formats=["webp"])
    report = convert_tree(src, out, formats=["webp"], skip_existing=True)

    assert report.converted == 0
    assert report.skipped == 2


def test_corrupt_source_is_reported_and_others_continue(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    (src / "pc" / "broken.webp").write_bytes(b"definitely not webp")
    out = tmp_path / "converted"

    report = convert_tree(src, out, formats=["webp"])

    assert not report.ok
    assert report.failed == ["pc/broken.webp"]
    assert (out / "pc" / "webp" / "wide.webp").is_file()


def test_unknown_format_is_rejected() -> None:
    with pytest.raises(ValueError):
        available_formats(["webp", "tiff"])


def test_write_manifest(tmp_path: Path) -> None:
    path = tmp_path / "out" / "images.txt"
    write_manifest(path, ["pc/a.png", "pe/b.jpg"])
    assert path.read_text(encoding="utf-8") == "pc/a.png\npe/b.jpg\n"


def test_main_exit_codes(tmp_path: Path) -> None:
    src = _make_tree(tmp_path)
    out = tmp_path / "converted"
    manifest = tmp_path / "images.txt"

    assert main(["--input", str(src), "--output", str(out), "--formats", "webp", "--manifest", str(manifest)]) == 0
    assert manifest.read_text(encoding="utf-8").splitlines() == ["pc/wide.png", "pe/tall.jpg"]

    assert main(["--input", str(src), "--output", str(out), "--formats", "gif"]) == 2
    assert main(["--input", str(src), "--output", str(out), "--quality", "webp=abc"]) == 2

    (src / "pe" / "broken.png").write_bytes(b"\x89PNG garbage")
    assert main(["--input", str(src), "--output", str(out), "--formats", "webp"]) == 1
