from pydantic import BaseModel, Field


class DetectionOut(BaseModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    bbox: list[float] | None = None
    texty: bool = False
    sensitive: bool = False
    color: str | None = None


class DetectResponse(BaseModel):
    ok: bool = True
    model: str
    latency_ms: int
    image_size: list[int]
    detections: list[DetectionOut]
    ocr_candidate: DetectionOut | None = None


class SummarizeRequest(BaseModel):
    text: str = ''


class SummarizeResponse(BaseModel):
    ok: bool = True
    summary: str
    sentence_count: int
    selected_count: int
    word_count: int
    char_count: int
    reduction_percent: int


class HighlightRequest(BaseModel):
    text: str = ''
    keyword: str = ''


class HighlightResponse(BaseModel):
    ok: bool = True
    highlighted_text: str
    count: int


class StripMarkupRequest(BaseModel):
    text: str = ''


class StripMarkupResponse(BaseModel):
    ok: bool = True
    text: str


class TranslateRequest(BaseModel):
    text: str = ''
    target: str = 'es'


class TranslateResponse(BaseModel):
    ok: bool = True
    translated_text: str
    target: str
    target_name: str
    endpoint: str


class LanguageOut(BaseModel):
    code: str
    name: str


class LanguagesResponse(BaseModel):
    ok: bool = True
    translation: list[LanguageOut]
    speech: list[LanguageOut]


class OcrResponse(BaseModel):
    ok: bool = True
    model: str
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    latency_ms: int


class SpeakRequest(BaseModel):
    text: str = ''
    language: str = 'en-US'


class SpeakResponse(BaseModel):
    ok: bool = True
    provider: str
    language: str
    chars: int


class SpeakStopResponse(BaseModel):
    ok: bool = True
    provider: str


class VisionStatusResponse(BaseModel):
    ok: bool = True
    state: str
    running: bool
    model_loaded: bool
    model: str | None = None
    speech_enabled: bool
    detections: list[DetectionOut] = []
    ocr_text: str = ''
    ocr_busy: bool = False
    last_error: str | None = None
    frames_processed: int = 0


class SpeechToggleRequest(BaseModel):
    enabled: bool


class HealthResponse(BaseModel):
    ok: bool
    version: str
    provider: str
    model_loaded: bool
    model: str | None = None
    text_provider: str
    text_provider_available: bool
    speech_provider: str
    speech_provider_available: bool
    vision_state: str
    uptime_s: float


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    message: str
    request_id: str | None = None
    details: dict | None = None
