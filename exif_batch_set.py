#!/usr/bin/env python3
"""
Set the EXIF date fields of every JPEG in a folder to one fixed timestamp.

Usage:
  exif-batch-set <folder> "YYYY:MM:DD HH:MM:SS"
                 [--recursive]
                 [--dry-run]
                 [--no-backup]
                 [--verbose]

Notes:
- DateTimeOriginal, DateTimeDigitized and DateTime (0th IFD) are all set to
  the given value in a single write. Other tags and image data are kept.
- Before a file is modified it is copied to <file>.bak. An existing .bak is
  never overwritten; that file is reported as an error and left alone.
- The datetime is only checked for its layout, not for calendar validity:
  "2026:13:99 25:61:61" is accepted.
- piexif rewrites the file in place. A run that is killed mid-write can leave
  a damaged original, so keep the backups until the run has finished.
"""

import argparse
import contextlib
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

try:
    import piexif
except ImportError:
    print("This script requires the 'piexif' package. Install with: pip install piexif",
          file=sys.stderr)
    sys.exit(2)

logger = logging.getLogger(__name__)

JPEG_EXTS = {".jpg", ".jpeg"}
BACKUP_SUFFIX = ".bak"
DATETIME_FORMAT_HINT = "YYYY:MM:DD HH:MM:SS"

# "YYYY:MM:DD HH:MM:SS"
_DIGIT_POSITIONS = (0, 1, 2, 3, 5, 6, 8, 9, 11, 12, 14, 15, 17, 18)
_SEPARATORS = {4: ":", 7: ":", 10: " ", 13: ":", 16: ":"}

EPILOG = """Examples:
  %(prog)s /photos "2026:02:25 18:30:00"
  %(prog)s /photos "2026:02:25 18:30:00" --recursive
  %(prog)s /photos "2026:02:25 18:30:00" --dry-run
"""


@dataclass(frozen=True)
class RunConfig:
    folder: Path
    datetime: str
    recursive: bool = False
    dry_run: bool = False
    make_backup: bool = True


@dataclass
class RunStats:
    total: int = 0
    ok: int = 0
    skipped: int = 0

    @property
    def failed(self) -> int:
        return self.total - self.ok


# --------- Input checks ---------

def is_valid_exif_datetime(value) -> bool:
    """Check the fixed EXIF layout "YYYY:MM:DD HH:MM:SS" (no range checks)."""
    if not isinstance(value, str) or len(value) != 19:
        return False
    for i in _DIGIT_POSITIONS:
        if value[i] not in "0123456789":
            return False
    return all(value[i] == sep for i, sep in _SEPARATORS.items())


def is_jpeg_path(path: Path) -> bool:
    return Path(path).suffix.lower() in JPEG_EXTS


def printable(text) -> str:
    """Path or message as text any UTF-8 stream accepts.

    Undecodable bytes in file names come back as ``\\xNN``.
    """
    return os.fsencode(text).decode("utf-8", "backslashreplace")


def is_readable_dir(folder: Path) -> bool:
    return folder.is_dir() and os.access(folder, os.R_OK | os.X_OK)


# --------- Folder walking ---------

def _report_walk_error(err: OSError):
    print(f"ERR: {printable(err.filename or '')} : {printable(err.strerror or str(err))}", file=sys.stderr)


def iter_files(root: Path, recursive: bool = False) -> Iterator[Path]:
    """Yield regular files under ``root`` in filesystem order.

    Subdirectories are only descended into when ``recursive`` is set; they are
    never yielded themselves. Symlinks to files count as files. Subfolders
    that cannot be listed are reported on stderr and left out.
    """
    if recursive:
        for dirpath, _, filenames in os.walk(root, onerror=_report_walk_error):
            base = Path(dirpath)
            for filename in filenames:
                path = base / filename
                if path.is_file():
                    yield path
    else:
        for path in Path(root).iterdir():
            if path.is_file():
                yield path


# --------- Backups ---------

def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def make_backup(path: Path) -> tuple[bool, str]:
    """Copy ``path`` byte for byte to ``<path>.bak``.

    Returns (True, backup path) or (False, reason). An existing backup is
    never replaced, and a half-written backup is removed again.
    """
    backup = backup_path_for(path)
    if backup.exists():
        return False, f"backup already exists, skip: {printable(backup)}"

    try:
        src = open(path, "rb")
    except OSError as e:
        logger.debug("cannot read %s: %s", path, e)
        return False, f"backup failed: {printable(path)} : failed to open source for backup"

    with src:
        try:
            dst = open(backup, "xb")
        except FileExistsError:
            return False, f"backup already exists, skip: {printable(backup)}"
        except OSError as e:
            logger.debug("cannot create %s: %s", backup, e)
            return False, f"backup failed: {printable(path)} : failed to open destination for backup"

        try:
            with dst:
                shutil.copyfileobj(src, dst)
        except OSError as e:
            logger.debug("copy to %s failed: %s", backup, e)
            with contextlib.suppress(OSError):
                backup.unlink()
            return False, f"backup failed: {printable(path)} : failed while writing backup"

    return True, str(backup)


# --------- EXIF helpers ---------

def ensure_exif_dict(exif_dict=None):
    if not exif_dict or not isinstance(exif_dict, dict):
        return {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}, "thumbnail": None}
    exif_dict.setdefault("0th", {})
    exif_dict.setdefault("Exif", {})
    exif_dict.setdefault("GPS", {})
    exif_dict.setdefault("1st", {})
    exif_dict.setdefault("thumbnail", None)
    return exif_dict


def set_exif_dates(exif_dict, value: str):
    s = value.encode("ascii")
    exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = s   # 0x9003
    exif_dict["Exif"][piexif.ExifIFD.DateTimeDigitized] = s  # 0x9004
    exif_dict["0th"][piexif.ImageIFD.DateTime] = s           # 0x0132, ModifyDate
    return exif_dict


def write_exif_dates(path: Path, value: str) -> tuple[bool, str]:
    """Load the EXIF table of ``path``, set the three date tags and write it back.

    Never raises for a bad file: any failure comes back as (False, cause) and
    the file is left as it was unless the final insert itself failed.
    """
    try:
        exif_dict = ensure_exif_dict(piexif.load(str(path)))
        exif_dict = set_exif_dates(exif_dict, value)
        exif_bytes = piexif.dump(exif_dict)
        piexif.insert(exif_bytes, str(path))
    except Exception as e:
        logger.debug("EXIF update failed for %s", path, exc_info=True)
        return False, printable(str(e)) or e.__class__.__name__
    return True, ""


# --------- Core processing ---------

def process_file(path: Path, config: RunConfig) -> tuple[bool, str]:
    """Back up and update one JPEG. Returns (success, line to print)."""
    if config.dry_run:
        return True, f"DRY: {printable(path)}"

    if config.make_backup:
        ok, detail = make_backup(path)
        if not ok:
            return False, f"ERR: {detail}"
        logger.debug("backup written: %s", detail)

    ok, cause = write_exif_dates(path, config.datetime)
    if not ok:
        return False, f"ERR: {printable(path)} : {cause}"
    logger.debug("set EXIF dates of %s to %s", path, config.datetime)
    return True, f"OK : {printable(path)}"


def run(config: RunConfig) -> RunStats:
    stats = RunStats()
    for path in iter_files(config.folder, recursive=config.recursive):
        if not is_jpeg_path(path):
            logger.debug("skip (not a JPEG): %s", path)
            stats.skipped += 1
            continue

        stats.total += 1
        ok, msg = process_file(path, config)
        if ok:
            stats.ok += 1
            print(msg)
        else:
            print(msg, file=sys.stderr)

    print(f"Done. Updated {stats.ok} / {stats.total} JPEG files. "
          f"Skipped(non-jpeg): {stats.skipped}")
    return stats


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="exif-batch-set",
        description="Set DateTimeOriginal, DateTimeDigitized and DateTime of all JPEGs in a folder.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    ap.add_argument("folder", type=Path, help="Folder to scan")
    ap.add_argument("datetime", help=f'New date, exactly "{DATETIME_FORMAT_HINT}"')
    ap.add_argument("--recursive", action="store_true", help="Process subfolders")
    ap.add_argument("--dry-run", action="store_true",
                    help="Do not modify files, just print what would be changed")
    ap.add_argument("--no-backup", dest="make_backup", action="store_false",
                    help="Do not create .bak backup files")
    ap.add_argument("--verbose", "-v", action="store_true", help="Log details to stderr")
    return ap


def main(argv=None) -> int:
    ap = build_parser()
    args, unknown = ap.parse_known_args(argv)

    if unknown:
        print(f"Unknown option: {unknown[0]}", file=sys.stderr)
        ap.print_help(sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not is_valid_exif_datetime(args.datetime):
        print(f'Invalid datetime. Expected: "{DATETIME_FORMAT_HINT}"', file=sys.stderr)
        return 2

    if not args.folder.exists() or not args.folder.is_dir():
        print(f"Folder does not exist or is not a directory: {printable(args.folder)}", file=sys.stderr)
        return 2

    if not is_readable_dir(args.folder):
        print(f"Folder cannot be read: {printable(args.folder)}", file=sys.stderr)
        return 2

    config = RunConfig(
        folder=args.folder,
        datetime=args.datetime,
        recursive=args.recursive,
        dry_run=args.dry_run,
        make_backup=args.make_backup,
    )
    stats = run(config)
    return 0 if stats.ok == stats.total else 1


if __name__ == "__main__":
    sys.exit(main())
