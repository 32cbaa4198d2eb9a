from abc import ABC, abstractmethod

from smartvision.config import Settings
from smartvision.core.types import DetectionResult


class Detector(ABC):
    @abstractmethod
    def detect(self, image) -> DetectionResult:
        raise NotImplementedError

    @property
    @abstractmethod
    def model_id(self) -> str:
        raise NotImplementedError


def create_detector(settings: Settings) -> Detector:
    provider = settings.provider.strip().lower()
    if provider == 'dummy':
        from smartvision.providers.dummy_provider import DummyProvider

        return DummyProvider(model_id='dummy-v1')
    if provider == 'yolo':
        from smartvision.providers.yolo_provider import YoloProvider

        return YoloProvider(model_id=settings.model_id)
    if provider == 'max_remote':
        from smartvision.providers.max_remote_provider import MaxRemoteProvider

        return MaxRemoteProvider(
            base_url=settings.max_remote_base_url,
            predict_path=settings.max_remote_predict_path,
            timeout_ms=settings.max_remote_timeout_ms,
            threshold=settings.conf_threshold,
        )
    raise ValueError(f'Unsupported PROVIDER={settings.provider!r}')
