from dataclasses import dataclass


@dataclass
class Detection:
    label: str
    confidence: float
    # [x, y, width, height] in pixels of the frame the detection came from.
    bbox: list[float] | None = None


@dataclass
class DetectionResult:
    detections: list[Detection]
    model_id: str
    latency_ms: int
    image_size: tuple[int, int]


@dataclass
class OcrResult:
    text: str
    confidence: float = 0.0
