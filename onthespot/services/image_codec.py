# 이미지 압축: 원본 이미지 바이트 → 크기 상한 이하의 base64 JPEG 문자열
# 품질을 단계적으로 낮추고, 그래도 크면 해상도를 줄여 재시도

import base64
import io
import logging
from typing import Iterable

from PIL import Image, UnidentifiedImageError

from onthespot.errors import EncodingError, ImageTooLargeError

logger = logging.getLogger(__name__)

QUALITY_STEPS = (85, 70, 55, 40, 25, 10)
SCALE_STEP = 0.75
MAX_DOWNSCALES = 6
MIN_SIDE_PX = 64


def _encode_jpeg(image: Image.Image, quality: int) -> str:
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality, optimize=True)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _candidates(image: Image.Image) -> Iterable[Image.Image]:
    current = image
    yield current
    for _ in range(MAX_DOWNSCALES):
        width, height = current.size
        new_size = (int(width * SCALE_STEP), int(height * SCALE_STEP))
        if min(new_size) < MIN_SIDE_PX:
            return
        current = current.resize(new_size, Image.Resampling.LANCZOS)
        yield current


def compress(raw_image: bytes, max_bytes: int) -> str:
    """
    raw_image 를 base64 JPEG 로 인코딩. 결과 문자열 길이 <= max_bytes 보장.

    - 이미지로 읽을 수 없으면 EncodingError
    - 최저 품질/최소 해상도까지 줄여도 상한을 넘으면 ImageTooLargeError
    """
    try:
        image = Image.open(io.BytesIO(raw_image))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise EncodingError(f"Unreadable image: {e}")

    if image.mode != "RGB":
        image = image.convert("RGB")

    for candidate in _candidates(image):
        for quality in QUALITY_STEPS:
            payload = _encode_jpeg(candidate, quality)
            if len(payload) <= max_bytes:
                logger.debug(
                    "image compressed to %d bytes (%dx%d, q=%d)",
                    len(payload), candidate.size[0], candidate.size[1], quality,
                )
                return payload

    raise ImageTooLargeError(f"Image could not be compressed under {max_bytes} bytes")


def decode(payload: str) -> bytes:
    return base64.b64decode(payload)
