"""
Image payload utility functions.
"""
import base64
import binascii
import hashlib

import cv2
import numpy as np


def decode_base64_image(payload: str) -> bytes:
    """Decode a base64 image payload, accepting an optional data URL prefix.

    Args:
        payload: Base64 text, e.g. ``data:image/jpeg;base64,/9j/4AAQ...``

    Returns:
        bytes: Raw encoded image bytes

    Raises:
        ValueError: If the payload is not valid base64
    """
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image payload: {e}")


def bytes_to_numpy_array(image_bytes: bytes, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """Convert image bytes to a numpy array.

    Args:
        image_bytes: Raw image bytes
        flags: OpenCV imread flags (default: COLOR)

    Returns:
        numpy.ndarray: Image as a numpy array

    Raises:
        ValueError: If the image cannot be decoded
    """
    np_array = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(np_array, flags)

    if img is None:
        raise ValueError("Failed to decode image bytes")

    return img


def image_digest(image_bytes: bytes) -> str:
    """Return the hex SHA-256 digest used to identify an image payload."""
    return hashlib.sha256(image_bytes).hexdigest()
