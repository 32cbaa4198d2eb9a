import time

from smartvision.core.detector import Detector
from smartvision.core.types import Detection, DetectionResult


class DummyProvider(Detector):
    def __init__(self, model_id: str = 'dummy-v1') -> None:
        self._model_id = model_id

    @property
    def model_id(self) -> str:
        return self._model_id

    def detect(self, image) -> DetectionResult:
        start = time.perf_counter()
        width, height = image.size
        detections = [
            Detection(label='book', confidence=0.88, bbox=[10, 20, max(1, min(width - 10, 200)), max(1, min(height - 20, 140))]),
            Detection(label='person', confidence=0.71, bbox=[width // 2, 10, max(1, width // 3), max(1, height - 20)]),
            Detection(label='cup', confidence=0.52, bbox=[30, height // 2, max(1, width // 5), max(1, height // 4)]),
        ]
        latency_ms = int((time.perf_counter() - start) * 1000)
        return DetectionResult(
            detections=detections,
            model_id=self.model_id,
            latency_ms=max(latency_ms, 1),
            image_size=(width, height),
        )
