from PIL import Image, ImageDraw

from smartvision.core.image_region import clamp_bbox
from smartvision.core.labels import LabelTable
from smartvision.core.types import Detection

LABEL_HEIGHT = 20
TEXT_COLOR = (255, 255, 255)


def detection_caption(detection: Detection) -> str:
    return f'{detection.label} {round(detection.confidence * 100)}%'


def draw_detections(frame: Image.Image, detections: list[Detection], labels: LabelTable) -> Image.Image:
    canvas = frame.convert('RGB')
    draw = ImageDraw.Draw(canvas)
    for detection in detections:
        box = clamp_bbox(detection.bbox, canvas.size)
        if box is None:
            continue
        left, top, right, bottom = box
        color = labels.overlay_color(detection.label)
        draw.rectangle((left, top, right - 1, bottom - 1), outline=color, width=2)

        caption = detection_caption(detection)
        text_width = draw.textlength(caption)
        label_top = top - LABEL_HEIGHT - 2 if top >= LABEL_HEIGHT + 2 else top
        draw.rectangle((left, label_top, left + text_width + 10, label_top + LABEL_HEIGHT), fill=color)
        draw.text((left + 5, label_top + 4), caption, fill=TEXT_COLOR)
    return canvas
