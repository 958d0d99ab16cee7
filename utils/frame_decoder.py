"""
Frame decoding for camera frames posted by the mirror page.

The page captures the camera every detection interval and posts it as JPEG
(or PNG). Frames wider than MAX_FRAME_WIDTH are downscaled before detection;
landmark geometry is normalized later, so scale does not affect scoring.
"""

from typing import Optional

import cv2
import numpy as np

from config import MAX_FRAME_WIDTH


def decode_frame(image_bytes: Optional[bytes], max_width: int = MAX_FRAME_WIDTH) -> Optional[np.ndarray]:
    """
    Decode image bytes to a BGR frame, resizing when wider than max_width.

    Returns None for empty or undecodable input.
    """
    if not image_bytes:
        return None
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    frame = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if frame is None:
        return None
    h, w = frame.shape[:2]
    if max_width and w > max_width:
        scale = max_width / w
        new_h = max(1, int(round(h * scale)))
        frame = cv2.resize(frame, (int(max_width), new_h), interpolation=cv2.INTER_AREA)
    return frame
