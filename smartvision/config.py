from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TRANSLATION_ENDPOINTS = ','.join(
    [
        'https://libretranslate.com/translate',
        'https://translate.astian.org/translate',
        'https://translate.argosopentech.com/translate',
    ]
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    provider: str = 'dummy'
    model_id: str = 'yolo11n.pt'
    max_remote_base_url: str = 'http://127.0.0.1:5000'
    max_remote_predict_path: str = '/model/predict'
    max_remote_timeout_ms: int = 12000
    conf_threshold: float = 0.35
    text_provider: str = 'tesseract'
    ocr_language: str = 'eng'
    ocr_cooldown_ms: int = 1500
    speech_provider: str = 'pyttsx3'
    speech_enabled: bool = False
    speech_language: str = 'en-US'
    speech_rate: float = 1.0
    speech_pitch: float = 1.05
    translation_endpoints: str = DEFAULT_TRANSLATION_ENDPOINTS
    translation_timeout_ms: int = 15000
    summary_ratio: float = 0.3
    summary_min_words: int = 10
    camera_index: int = 0
    frame_width: int = 1280
    frame_height: int = 720
    frame_interval_ms: int = 16
    overlay_enabled: bool = True
    texty_labels_extra: str = ''
    sensitive_labels_extra: str = ''
    max_image_bytes: int = 8 * 1024 * 1024
    host: str = '127.0.0.1'
    port: int = 8001
    log_level: str = 'INFO'
    version: str = '1.0.0'

    @property
    def translation_endpoint_list(self) -> list[str]:
        return [url.strip() for url in self.translation_endpoints.split(',') if url.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
