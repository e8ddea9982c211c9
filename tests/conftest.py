"""
Shared helpers for the imgopt test suite.

Images are generated with Pillow so the suite carries no binary fixtures.
"""

import io
from typing import Callable, Dict, List

import pytest
from PIL import Image

from imgopt.settings import OptimizeSettings


SAMPLE_SVG = b"""<?xml version="1.0" encoding="UTF-8"?>
<!-- exported by a drawing tool, this comment should go away -->
<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10" viewBox="0 0 10 10">
    <metadata>
        <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"></rdf:RDF>
    </metadata>
    <g>
        <rect id="box" x="1" y="1" width="8" height="8" fill="#ff0000"/>
    </g>
</svg>
"""


def make_png(size=(64, 64), color=(200, 30, 30), mode="RGB", compress_level=0) -> bytes:
    """An uncompressed PNG, so any real optimization makes it smaller."""
    fill = color + (128,) if mode == "RGBA" else color
    im = Image.new(mode, size, fill)
    buf = io.BytesIO()
    im.save(buf, format="PNG", compress_level=compress_level)
    return buf.getvalue()


def make_gif(frames=3, size=(16, 16)) -> bytes:
    images = [Image.new("RGB", size, (i * 60, 0, 255 - i * 60)) for i in range(frames)]
    buf = io.BytesIO()
    images[0].save(buf, format="GIF", save_all=True, append_images=images[1:], duration=100, loop=0)
    return buf.getvalue()


class RecordingEngine:
    """
    Stand-in codec: returns a fixed transformation of the input and records
    every path it was called for.
    """

    def __init__(self, transform: Callable[[bytes], bytes] = lambda b: b[: len(b) // 2]):
        self.transform = transform
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}

    def fail_on(self, path: str, exc: Exception) -> None:
        self.failures[path] = exc

    def __call__(self, path: str, data: bytes, settings: OptimizeSettings) -> bytes:
        self.calls.append(path)
        if path in self.failures:
            raise self.failures[path]
        return self.transform(data)


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def shrinking_engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def growing_engine() -> RecordingEngine:
    return RecordingEngine(lambda b: b + b"-padding")
