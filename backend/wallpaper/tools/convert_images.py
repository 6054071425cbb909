from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from PIL import Image, UnidentifiedImageError, features

from wallpaper.core.catalog import IMAGE_EXTENSIONS
from wallpaper.core.device import DEVICE_TYPES
from wallpaper.core.image_urls import FORMAT_EXTENSIONS
from wallpaper.core.logging import configure_logging, get_logger

log = get_logger(__name__)

DEFAULT_QUALITY: dict[str, int] = {
    "webp": 80,
    "avif": 50,
    "jpeg": 85,
}

_PIL_FORMAT: dict[str, str] = {
    "webp": "WEBP",
    "avif": "AVIF",
    "jpeg": "JPEG",
}


@dataclass(slots=True)
class ConvertReport:
    converted: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
    manifest_entries: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def available_formats(requested: Sequence[str]) -> list[str]:
    out: list[str] = []
    for fmt in requested:
        if fmt not in FORMAT_EXTENSIONS:
            raise ValueError(f"unsupported format: {fmt}")
        if fmt == "avif" and not features.check("avif"):
            log.warning("avif_unsupported_skipping pillow=%s", Image.__version__)
            continue
        if fmt not in out:
            out.append(fmt)
    return out


def ensure_output_tree(output_dir: Path, formats: Sequence[str]) -> None:
    for device_type in DEVICE_TYPES:
        for fmt in formats:
            (output_dir / device_type / fmt).mkdir(parents=True, exist_ok=True)


def iter_sources(input_dir: Path) -> list[tuple[str, Path]]:
    found: list[tuple[str, Path]] = []
    for device_type in DEVICE_TYPES:
        folder = input_dir / device_type
        if not folder.is_dir():
            log.warning("source_dir_missing dir=%s", str(folder))
            continue
        for path in sorted(folder.iterdir()):
            if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS:
                found.append((device_type, path))
    return found


def _prepare(img: Image.Image, fmt: str) -> Image.Image:
    if fmt == "jpeg" and img.mode not in {"RGB", "L"}:
        # JPEG has no alpha channel; flatten onto white.
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if fmt in {"webp", "avif"} and img.mode not in {"RGB", "RGBA"}:
        return img.convert("RGBA" if "A" in img.getbands() or img.mode == "P" else "RGB")
    return img


def convert_one(
    source: Path,
    target_dir: Path,
    formats: Sequence[str],
    *,
    quality: dict[str, int] | None = None,
    skip_existing: bool = False,
) -> tuple[int, int]:
    """Writes every requested variant of ``source``; returns (written, skipped)."""
    quality = {**DEFAULT_QUALITY, **(quality or {})}
    written = 0
    skipped = 0
    with Image.open(source) as img:
        img.load()
        for fmt in formats:
            out = target_dir / fmt / f"{source.stem}.{FORMAT_EXTENSIONS[fmt]}"
            if skip_existing and out.exists():
                skipped += 1
                continue
            _prepare(img, fmt).save(out, format=_PIL_FORMAT[fmt], quality=int(quality[fmt]))
            written += 1
    return written, skipped


def convert_tree(
    input_dir: Path,
    output_dir: Path,
    *,
    formats: Sequence[str] = ("webp", "avif", "jpeg"),
    quality: dict[str, int] | None = None,
    skip_existing: bool = False,
) -> ConvertReport:
    usable = available_formats(formats)
    ensure_output_tree(output_dir, usable)

    report = ConvertReport()
    for device_type, source in iter_sources(input_dir):
        try:
            written, skipped = convert_one(
                source,
                output_dir / device_type,
                usable,
                quality=quality,
                skip_existing=skip_existing,
            )
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            log.error("convert_failed file=%s/%s err=%s", device_type, source.name, str(exc) or type(exc).__name__)
            report.failed.append(f"{device_type}/{source.name}")
            continue
        report.converted += written
        report.skipped += skipped
        report.manifest_entries.append(f"{device_type}/{source.name}")
        log.info("converted file=%s/%s written=%d skipped=%d", device_type, source.name, written, skipped)
    return report


def write_manifest(path: Path, entries: Sequence[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text("".join(f"{entry}\n" for entry in entries), encoding="utf-8")
    tmp.replace(path)


def _parse_quality(values: Sequence[str] | None) -> dict[str, int]:
    out: dict[str, int] = {}
    for raw in values or ():
        fmt, _, q = raw.partition("=")
        fmt = fmt.strip().lower()
        if fmt not in DEFAULT_QUALITY or not q.strip().isdigit():
            raise argparse.ArgumentTypeError(f"bad --quality value: {raw!r} (expected e.g. webp=80)")
        out[fmt] = max(1, min(int(q), 100))
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert images/{pc,pe}/* into converted/{pc,pe}/{webp,avif,jpeg}/ variants."
    )
    parser.add_argument("--input", default="./images", help="source tree with pc/ and pe/ folders")
    parser.add_argument("--output", default="./converted", help="output tree")
    parser.add_argument(
        "--formats",
        default="webp,avif,jpeg",
        help="comma separated subset of webp,avif,jpeg",
    )
    parser.add_argument("--quality", action="append", metavar="FMT=Q", help="override quality, e.g. webp=75")
    parser.add_argument("--skip-existing", action="store_true", help="keep variants that already exist")
    parser.add_argument("--manifest", default="", help="write a pc/<name> text manifest of converted sources")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        quality = _parse_quality(args.quality)
        formats = [f.strip().lower() for f in str(args.formats).split(",") if f.strip()]
        report = convert_tree(
            Path(args.input),
            Path(args.output),
            formats=formats,
            quality=quality,
            skip_existing=bool(args.skip_existing),
        )
    except (ValueError, argparse.ArgumentTypeError) as exc:
        log.error("convert_aborted err=%s", str(exc))
        return 2

    if args.manifest:
        write_manifest(Path(args.manifest), report.manifest_entries)
        log.info("manifest_written path=%s entries=%d", args.manifest, len(report.manifest_entries))

    log.info(
        "convert_done converted=%d skipped=%d failed=%d",
        report.converted,
        report.skipped,
        len(report.failed),
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
