from pathlib import Path

import piexif
import pytest
from PIL import Image


def _write_jpeg(path: Path, exif=None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", (8, 8), (200, 40, 40))
    if exif is not None:
        img.save(path, "JPEG", exif=piexif.dump(exif))
    else:
        img.save(path, "JPEG")
    return path


@pytest.fixture
def make_jpeg():
    """Factory for small real JPEGs, optionally with an EXIF table."""
    return _write_jpeg
