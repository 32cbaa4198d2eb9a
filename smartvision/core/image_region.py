import math

from PIL import Image


def clamp_bbox(bbox: list[float] | None, image_size: tuple[int, int]) -> tuple[int, int, int, int] | None:
    """Turn an [x, y, width, height] box into a pixel (left, top, right, bottom) box inside the image."""
    if not bbox or len(bbox) != 4:
        return None
    width, height = image_size
    if width <= 0 or height <= 0:
        return None
    x, y, w, h = (max(0, math.floor(float(value))) for value in bbox)
    left = min(x, width - 1)
    top = min(y, height - 1)
    right = min(left + w, width)
    bottom = min(top + h, height)
    if right <= left or bottom <= top:
        return None
    return left, top, right, bottom


def crop_to_bbox(image: Image.Image, bbox: list[float] | None) -> Image.Image | None:
    box = clamp_bbox(bbox, image.size)
    if box is None:
        return None
    return image.crop(box)
