import time

from smartvision.core.detector import Detector
from smartvision.core.types import Detection, DetectionResult


class YoloProvider(Detector):
    def __init__(self, model_id: str = 'yolo11n.pt') -> None:
        try:
            from ultralytics import YOLO
        except ImportError as exc:
            raise RuntimeError('ultralytics is required for PROVIDER=yolo. Install the yolo extra first.') from exc

        self._model_id = model_id
        self._model = YOLO(model_id)

    @property
    def model_id(self) -> str:
        return self._model_id

    def detect(self, image) -> DetectionResult:
        start = time.perf_counter()
        width, height = image.size
        prediction = self._model(image, verbose=False)

        detections: list[Detection] = []
        if prediction:
            result = prediction[0]
            names = result.names
            boxes = result.boxes
            if boxes is not None:
                # ultralytics already ranks boxes by confidence.
                for cls_id, conf, xyxy in zip(boxes.cls.tolist(), boxes.conf.tolist(), boxes.xyxy.tolist()):
                    x1, y1, x2, y2 = (float(v) for v in xyxy)
                    detections.append(
                        Detection(
                            label=str(names.get(int(cls_id), int(cls_id))),
                            confidence=float(conf),
                            bbox=[x1, y1, max(0.0, x2 - x1), max(0.0, y2 - y1)],
                        )
                    )

        latency_ms = int((time.perf_counter() - start) * 1000)
        return DetectionResult(
            detections=detections,
            model_id=self.model_id,
            latency_ms=max(latency_ms, 1),
            image_size=(width, height),
        )
