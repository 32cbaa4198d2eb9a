from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from smartvision.core.errors import SmartVisionError

FRAME_JPEG_QUALITY = 85


def decode_upload(payload: bytes, max_bytes: int) -> Image.Image:
    """Decode an uploaded photo into an upright RGB image.

    Phone cameras store rotation in EXIF; labels photographed sideways read
    badly, so the orientation tag is applied before OCR or detection.
    """
    if not payload:
        raise SmartVisionError('MISSING_IMAGE', 'Please upload an image (field name: image).', status_code=400)
    if len(payload) > max_bytes:
        raise SmartVisionError(
            'IMAGE_TOO_LARGE',
            'Image is too large. Please upload a smaller photo.',
            status_code=413,
            details={'size_bytes': len(payload), 'max_bytes': max_bytes},
        )

    try:
        with Image.open(BytesIO(payload)) as source:
            upright = ImageOps.exif_transpose(source)
            return upright.convert('RGB')
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise SmartVisionError(
            'IMAGE_DECODE_FAILED',
            'Could not read the image. Please upload a JPEG or PNG photo.',
            status_code=400,
        ) from exc


def encode_frame_jpeg(frame: Image.Image) -> bytes:
    buffer = BytesIO()
    frame.convert('RGB').save(buffer, format='JPEG', quality=FRAME_JPEG_QUALITY)
    return buffer.getvalue()
