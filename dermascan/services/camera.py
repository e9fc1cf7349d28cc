"""
Camera capture and image blob helpers.

Images travel through the application as JPEG data URLs
(``data:image/jpeg;base64,...``), the same self-describing form a browser
capture produces.
"""
import base64
import binascii
import io
import logging
from typing import Callable, Optional

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


class CameraError(Exception):
    """Camera unavailable, denied or unable to deliver a frame."""


class InvalidImageError(ValueError):
    """Image blob that cannot be decoded."""


def encode_frame(frame: np.ndarray, quality: int = 80) -> str:
    """Encode a BGR frame as a JPEG data URL."""
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise CameraError("Failed to encode the captured frame")
    return DATA_URL_PREFIX + base64.b64encode(buffer.tobytes()).decode("ascii")


def image_bytes(image_blob: str) -> bytes:
    """Raw bytes of a data URL or bare base64 string."""
    data = image_blob.split(",", 1)[1] if "," in image_blob else image_blob
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Invalid base64 image data: {e}") from e


def mime_type(image_blob: str) -> str:
    if image_blob.startswith("data:") and ";" in image_blob:
        return image_blob[5:image_blob.index(";")]
    return "image/jpeg"


def open_image(image_blob: str) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(image_bytes(image_blob)))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Unreadable image: {e}") from e
    return image


def normalize_image(image_blob: str, quality: int = 80) -> str:
    """Validate an uploaded snapshot and re-encode it as a JPEG data URL."""
    image = open_image(image_blob).convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


class CameraCapture:
    """Access to the user-facing camera.

    ``open`` and ``release`` are called explicitly by the owner of the scan:
    the device is opened when the scanner is entered and released once the
    scanner is left, by snapshot, cancel, logout or shutdown. ``release`` is
    idempotent. The context manager form opens on entry and releases on exit
    for one-off captures.
    """

    def __init__(self, index: int = 0, quality: int = 80,
                 opener: Optional[Callable[[int], "cv2.VideoCapture"]] = None):
        self.index = index
        self.quality = quality
        self._opener = opener or cv2.VideoCapture
        self._device = None

    @property
    def is_open(self) -> bool:
        return self._device is not None

    def open(self) -> None:
        if self._device is not None:
            return
        device = self._opener(self.index)
        if device is None or not device.isOpened():
            if device is not None:
                device.release()
            raise CameraError("Could not access camera. Please ensure permissions are granted.")
        self._device = device
        logger.info(f"Camera {self.index} opened")

    def release(self) -> None:
        if self._device is None:
            return
        try:
            self._device.release()
        finally:
            self._device = None
            logger.info(f"Camera {self.index} released")

    def snapshot(self) -> str:
        """Grab one frame and return it as a JPEG data URL."""
        if self._device is None:
            raise CameraError("Camera is not open")
        ok, frame = self._device.read()
        if not ok or frame is None:
            raise CameraError("Failed to read a frame from the camera")
        return encode_frame(frame, self.quality)

    def __enter__(self) -> "CameraCapture":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
