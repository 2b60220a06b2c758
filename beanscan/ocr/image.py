"""
BeanScan Backend - Image Normalizer
=====================================

What:  Deterministic preprocessing of the uploaded photo before OCR.
How:   Pillow pipeline (order matters for reproducibility):
         1. Auto-rotate from EXIF orientation
         2. Grayscale
         3. Median filter (3x3) against speckle noise
         4. Histogram stretch (autocontrast)
         5. Linear gain/offset (1.15, -8) to separate text from background
         6. Sharpen
         7. Encode as PNG, then base64 for transport
Who:   Called by the pipeline before the Vision request, and by the
       normalize-image route for previews.
"""

import base64
import binascii
import io
import logging
import re
import warnings

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from beanscan.exceptions import ImageDecodeError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:.*;base64,")

MEDIAN_FILTER_SIZE = 3
AUTOCONTRAST_CUTOFF = 1  # percent clipped at each end of the histogram
LINEAR_GAIN = 1.15
LINEAR_OFFSET = -8
OUTPUT_FORMAT = "PNG"


def strip_data_url_prefix(value: str) -> str:
    """Remove a leading ``data:<mime>;base64,`` marker, if present."""
    return DATA_URL_PREFIX.sub("", value, count=1)


def decode_image(image_base64: str) -> Image.Image:
    """
    Decode base64 text into a fully loaded Pillow image.

    Raises:
        ImageDecodeError: payload is not base64, the bytes are not a raster image,
            or the pixel count exceeds Pillow's MAX_IMAGE_PIXELS
    """
    try:
        raw = base64.b64decode(image_base64)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(
            message="The image payload is not valid base64.",
            context={"error": str(e)},
        ) from e

    if not raw:
        raise ImageDecodeError(message="The image payload is empty.")

    try:
        with warnings.catch_warnings():
            # oversized images are rejected, not just warned about
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            image = Image.open(io.BytesIO(raw))
            image.load()
    except (
        UnidentifiedImageError,
        OSError,
        SyntaxError,
        Image.DecompressionBombError,
        Image.DecompressionBombWarning,
    ) as e:
        raise ImageDecodeError(
            message="The image could not be decoded.",
            context={"error": str(e), "size_bytes": len(raw)},
        ) from e
    return image


def _linear_lut(gain: float, offset: float) -> list:
    return [max(0, min(255, round(value * gain + offset))) for value in range(256)]


def preprocess(image: Image.Image) -> Image.Image:
    """Apply the fixed normalization steps to a decoded image."""
    image = ImageOps.exif_transpose(image)
    image = image.convert("L")
    image = image.filter(ImageFilter.MedianFilter(size=MEDIAN_FILTER_SIZE))
    image = ImageOps.autocontrast(image, cutoff=AUTOCONTRAST_CUTOFF)
    image = image.point(_linear_lut(LINEAR_GAIN, LINEAR_OFFSET))
    return image.filter(ImageFilter.SHARPEN)


def normalize_image(image_base64: str) -> str:
    """
    Normalize a base64 image (without data-URL prefix) into base64 PNG.

    Args:
        image_base64: Base64 text of any raster format Pillow can open.

    Returns:
        Base64 text of the grayscale, contrast-adjusted PNG.

    Raises:
        ImageDecodeError: input could not be decoded as an image
    """
    source = decode_image(image_base64)
    processed = preprocess(source)

    buffer = io.BytesIO()
    processed.save(buffer, format=OUTPUT_FORMAT)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")

    logger.debug(
        "Normalized image %s %sx%s -> %d base64 chars",
        source.format,
        processed.width,
        processed.height,
        len(encoded),
    )
    return encoded
