"""Image I/O utilities -- load/save numpy arrays with explicit bit-depth handling."""

import logging
import os
import sys
import threading
from pathlib import Path

import numpy as np
from PIL import Image

# Pixel-count validation happens per call in load_image() after reading the
# header, so Pillow's global decompression-bomb guard is not needed.
Image.MAX_IMAGE_PIXELS = None

logger = logging.getLogger("matscope.io")


def _load_exr(path: str) -> np.ndarray:
    """Load an OpenEXR file through OpenCV and clamp HDR values to [0, 1]."""
    os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")
    import cv2

    data = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if data is None:
        raise IOError(f"Failed to open EXR image: {path}")
    arr = data.astype(np.float32, copy=False)
    if arr.ndim == 3 and arr.shape[2] == 4:
        arr = arr[:, :, [2, 1, 0, 3]]  # BGRA -> RGBA
    elif arr.ndim == 3 and arr.shape[2] >= 3:
        arr = arr[:, :, 2::-1]  # BGR -> RGB
    if float(arr.max(initial=0.0)) > 1.0 or float(arr.min(initial=0.0)) < 0.0:
        logger.debug("EXR '%s' has values outside [0, 1]; clamping for analysis.", path)
    return np.ascontiguousarray(np.clip(arr, 0.0, 1.0), dtype=np.float32)


def load_image(path: str, max_pixels: int = 0) -> np.ndarray:
    """Load image as a float32 numpy array normalized to [0, 1].

    Grayscale sources stay 2D (H, W); color sources are (H, W, 3) or
    (H, W, 4) with alpha preserved.
    """
    ext = Path(path).suffix.lower()
    if ext == ".exr":
        return _load_exr(path)

    try:
        with Image.open(path) as img:
            if max_pixels > 0 and img.width * img.height > max_pixels:
                logger.warning(
                    "Image %s exceeds max_pixels: %d > %d",
                    path, img.width * img.height, max_pixels,
                )
                raise ValueError(
                    f"Image too large: {img.width}x{img.height} = "
                    f"{img.width * img.height:,} pixels (max {max_pixels:,})."
                )

            if img.mode in ("I;16", "I;16B", "I;16L", "I;16N"):
                logger.debug("Loading %s as 16-bit integer mode %s", path, img.mode)
                return np.asarray(img, dtype=np.float32) / 65535.0

            if img.mode == "I":
                arr = np.asarray(img, dtype=np.float32)
                max_value = 65535.0 if float(arr.max(initial=0.0)) > 255.0 else 255.0
                logger.debug("Loading %s as integer mode I (max %.0f)", path, max_value)
                return np.clip(arr / max_value, 0.0, 1.0)

            if img.mode == "F":
                arr = np.asarray(img, dtype=np.float32)
                return np.clip(arr, 0.0, 1.0)

            if img.mode in ("P", "LA", "PA"):
                logger.debug("Converting '%s' from %s->RGBA", path, img.mode)
                with img.convert("RGBA") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            elif img.mode in ("CMYK", "YCbCr", "HSV", "LAB"):
                logger.debug("Converting '%s' from %s->RGB", path, img.mode)
                with img.convert("RGB") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            elif img.mode == "1":
                with img.convert("L") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            else:
                arr = np.asarray(img, dtype=np.float32) / 255.0
            return arr.astype(np.float32, copy=False)
    except (ValueError, ImportError):
        raise
    except Exception as e:
        logger.error("Failed to open image '%s' (ext=%s): %s", path, ext, e)
        raise IOError(f"Failed to open image: {path} ({ext}): {e}") from e


def save_image(arr: np.ndarray, path: str, quality: int = 95, bits: int = 8):
    """Save float32 [0,1] numpy array as image.

    Handles RGB, RGBA, and grayscale (2D).  Uses atomic write (temp file +
    ``os.replace``) to prevent truncated output on crash.  16-bit output is
    supported for PNG.
    """
    arr = np.clip(np.asarray(arr, dtype=np.float32), 0, 1)

    if arr.size == 0 or arr.ndim < 2:
        raise ValueError(
            f"Cannot save empty or degenerate array (shape={arr.shape}) to {path}"
        )

    ext = Path(path).suffix.lower()
    use_16bit = bits == 16 and ext == ".png"

    parent_dir = os.path.dirname(path) or "."
    os.makedirs(parent_dir, exist_ok=True)

    # Keep original extension so Pillow/cv2 can infer the format.
    tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"

    try:
        if use_16bit:
            arr_16 = np.round(arr * 65535.0).astype(np.uint16)
            if arr_16.ndim == 3 and arr_16.shape[-1] == 1:
                arr_16 = arr_16[:, :, 0]
            if arr_16.ndim == 2:
                mode = "I;16" if sys.byteorder == "little" else "I;16B"
                with Image.fromarray(arr_16, mode=mode) as img:
                    img.save(tmp_path)
            else:
                import cv2

                if arr_16.shape[-1] == 4:
                    png_data = arr_16[:, :, [2, 1, 0, 3]]  # RGBA -> BGRA
                else:
                    png_data = arr_16[:, :, :3][:, :, ::-1]  # RGB -> BGR
                if not cv2.imwrite(tmp_path, np.ascontiguousarray(png_data)):
                    raise IOError(f"cv2.imwrite failed for 16-bit PNG: {path}")
            os.replace(tmp_path, path)
            logger.debug("Saved: %s (%s, 16bit)", path, arr.shape)
            return

        arr_out = np.round(arr * 255).astype(np.uint8)
        if arr_out.ndim == 3 and arr_out.shape[-1] == 1:
            arr_out = arr_out[:, :, 0]
        with Image.fromarray(arr_out) as img:
            if ext in (".jpg", ".jpeg"):
                if img.mode == "RGBA":
                    with img.convert("RGB") as converted:
                        converted.save(tmp_path, quality=quality)
                else:
                    img.save(tmp_path, quality=quality)
            elif ext == ".png":
                img.save(tmp_path, optimize=True)
            else:
                img.save(tmp_path)
        os.replace(tmp_path, path)
        logger.debug("Saved: %s (%s, 8bit)", path, arr_out.shape)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass


def to_rgb(arr: np.ndarray) -> np.ndarray:
    """Return the color channels as (H, W, 3), dropping alpha."""
    if arr.ndim == 2:
        return np.stack([arr] * 3, axis=-1)
    if arr.shape[-1] >= 3:
        return arr[:, :, :3]
    return np.concatenate([arr[:, :, :1]] * 3, axis=-1)


def color_channels(arr: np.ndarray) -> np.ndarray:
    """Return (H, W, C) color channels without alpha; grayscale keeps one channel."""
    if arr.ndim == 2:
        return arr[:, :, None]
    if arr.shape[-1] == 4:
        return arr[:, :, :3]
    if arr.shape[-1] == 2:
        return arr[:, :, :1]
    return arr


def luminance_bt601(arr: np.ndarray) -> np.ndarray:
    """Compute Rec.601 luma (0.299 R + 0.587 G + 0.114 B) from an image array."""
    if arr.ndim == 2:
        return arr.astype(np.float32, copy=False)
    rgb = to_rgb(arr).astype(np.float32, copy=False)
    return (
        0.299 * rgb[:, :, 0] +
        0.587 * rgb[:, :, 1] +
        0.114 * rgb[:, :, 2]
    ).astype(np.float32, copy=False)
