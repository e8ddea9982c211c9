from __future__ import annotations

import io
import logging
from types import SimpleNamespace
from typing import Any, Dict
from xml.parsers.expat import ExpatError

from PIL import Image
from scour import scour

from .errors import EngineError
from .settings import OptimizeSettings


logger = logging.getLogger(__name__)

# Maps a file extension to the Pillow encoder that writes it.
EXT_TO_FORMAT = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "tiff": "TIFF",
    "webp": "WEBP",
    "avif": "AVIF",
}

# Modes the JPEG encoder accepts as-is.
JPEG_MODES = {"RGB", "L", "CMYK"}

MAX_SVG_PASSES = 10


def extension_of(path: str) -> str:
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def is_svg(path: str) -> bool:
    return extension_of(path) == "svg"


def optimize_bytes(path: str, data: bytes, s: OptimizeSettings) -> bytes:
    """Route one file to the SVG or raster engine by its extension."""
    if is_svg(path):
        return optimize_svg(path, data, s.svg)
    return optimize_raster(path, data, s)


def optimize_raster(path: str, data: bytes, s: OptimizeSettings) -> bytes:
    ext = extension_of(path)
    out_format = EXT_TO_FORMAT.get(ext)
    options = s.format_options(ext)
    if out_format is None or options is None:
        raise EngineError(f"unsupported image format: .{ext}" if ext else "file has no extension")

    save_kwargs = _build_save_kwargs(ext, options)

    try:
        with Image.open(io.BytesIO(data)) as im:
            frame = im
            if out_format == "JPEG":
                frame = _prepare_for_jpeg(im)
            else:
                im.load()

            out = io.BytesIO()
            # Pillow picks the encoder from format=..., there is no filename here
            frame.save(out, format=out_format, **save_kwargs)
    except (OSError, ValueError, KeyError, SyntaxError) as exc:
        # KeyError: Pillow was built without this encoder
        raise EngineError(f"{out_format.lower()} codec failed: {exc}") from exc

    logger.debug("raster %s: %d -> %d bytes", path, len(data), out.tell())
    return out.getvalue()


def optimize_svg(path: str, data: bytes, options: Dict[str, Any]) -> bytes:
    opts = dict(options)
    multipass = bool(opts.pop("multipass", False))

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EngineError(f"svg is not valid UTF-8: {exc}") from exc

    # scour fills anything we leave out from its own defaults
    scour_options = scour.sanitizeOptions(SimpleNamespace(**opts))

    passes = MAX_SVG_PASSES if multipass else 1
    try:
        result = scour.scourString(text, scour_options)
        for _ in range(passes - 1):
            again = scour.scourString(result, scour_options)
            if len(again) >= len(result):
                break
            result = again
    except ExpatError as exc:
        raise EngineError(f"svg could not be parsed: {exc}") from exc

    logger.debug("svg %s: %d -> %d bytes", path, len(data), len(result))
    return result.encode("utf-8")


def _build_save_kwargs(ext: str, options: Dict[str, Any]) -> dict:
    kwargs: dict = dict(options)

    # Keep every frame of an animated GIF.
    if ext == "gif":
        kwargs.setdefault("save_all", True)

    return kwargs


def _prepare_for_jpeg(im: Image.Image) -> Image.Image:
    if _has_alpha(im):
        return _flatten_alpha(im, (255, 255, 255))
    if im.mode not in JPEG_MODES:
        return im.convert("RGB")
    im.load()
    return im


def _flatten_alpha(im: Image.Image, background_rgb: tuple[int, int, int]) -> Image.Image:
    # Ensure we are in RGBA so alpha exists
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background_rgb + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False
