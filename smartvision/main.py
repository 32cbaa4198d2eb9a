import asyncio
import logging
import time
import uuid

from fastapi import BackgroundTasks, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from smartvision.config import get_settings
from smartvision.core.errors import SmartVisionError
from smartvision.core.highlighter import highlight, strip_markup
from smartvision.core.languages import SPEECH_LANGUAGES, TRANSLATION_LANGUAGES
from smartvision.core.summarizer import summarize
from smartvision.core.text_cleanup import clean_recognized_text
from smartvision.logging_setup import setup_logging
from smartvision.providers.speech_provider import SpeechProvider, create_speech_provider
from smartvision.providers.text_provider import create_text_provider
from smartvision.providers.translation_provider import TranslationProvider
from smartvision.schemas import (
    DetectResponse,
    ErrorResponse,
    HealthResponse,
    HighlightRequest,
    HighlightResponse,
    LanguageOut,
    LanguagesResponse,
    OcrResponse,
    SpeakRequest,
    SpeakResponse,
    SpeakStopResponse,
    SpeechToggleRequest,
    StripMarkupRequest,
    StripMarkupResponse,
    SummarizeRequest,
    SummarizeResponse,
    TranslateRequest,
    TranslateResponse,
    VisionStatusResponse,
)
from smartvision.utils.image_io import decode_upload, encode_frame_jpeg
from smartvision.utils.timings import measure_ms
from smartvision.vision_session import LiveVisionSession, create_vision_session, describe_detection

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger('smartvision')

app = FastAPI(title='SmartVision', version=settings.version)
started_at = time.time()

SCRIPT_SPEECH_RATE = 0.9
SCRIPT_SPEECH_PITCH = 1.0


def _request_id(request: Request) -> str:
    return request.headers.get('x-request-id') or str(uuid.uuid4())


@app.on_event('startup')
def startup_event() -> None:
    text_provider = create_text_provider(settings.text_provider, settings.ocr_language)
    speech_provider = create_speech_provider(settings.speech_provider)
    app.state.text_provider = text_provider
    app.state.speech_provider = speech_provider
    app.state.translation_provider = TranslationProvider(
        settings.translation_endpoint_list,
        timeout_ms=settings.translation_timeout_ms,
    )
    app.state.vision = create_vision_session(settings, text_provider, speech_provider)
    text_status = text_provider.status()
    speech_status = speech_provider.status()
    logger.info(
        'Providers initialized detector=%s text_provider=%s text_available=%s text_message=%s speech_provider=%s speech_available=%s',
        settings.provider,
        text_provider.model_id,
        text_status.get('available'),
        text_status.get('message'),
        speech_provider.model_id,
        speech_status.get('available'),
    )
    logger.info('Translation endpoints=%s', settings.translation_endpoint_list)


@app.on_event('shutdown')
async def shutdown_event() -> None:
    vision: LiveVisionSession = app.state.vision
    await vision.stop()


@app.exception_handler(SmartVisionError)
async def smartvision_error_handler(request: Request, exc: SmartVisionError):
    payload = ErrorResponse(
        error=exc.code,
        message=exc.message,
        request_id=_request_id(request),
        details=exc.details or None,
    )
    return JSONResponse(status_code=exc.status_code, content=payload.model_dump())


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.exception('Unhandled exception request_id=%s', request_id)
    payload = ErrorResponse(
        error='UNEXPECTED_SERVER_ERROR',
        message='Unexpected server error.',
        request_id=request_id,
    )
    return JSONResponse(status_code=500, content=payload.model_dump())


@app.get('/health', response_model=HealthResponse)
def health():
    vision: LiveVisionSession = app.state.vision
    status = vision.status()
    return HealthResponse(
        ok=True,
        version=settings.version,
        provider=settings.provider,
        model_loaded=status['model_loaded'],
        model=status['model'],
        text_provider=app.state.text_provider.model_id,
        text_provider_available=bool(app.state.text_provider.status().get('available')),
        speech_provider=app.state.speech_provider.model_id,
        speech_provider_available=bool(app.state.speech_provider.status().get('available')),
        vision_state=status['state'],
        uptime_s=round(time.time() - started_at, 3),
    )


@app.post('/summarize', response_model=SummarizeResponse)
def summarize_text(payload: SummarizeRequest):
    result = summarize(payload.text, ratio=settings.summary_ratio, min_words=settings.summary_min_words)
    logger.info(
        'summarize sentences=%s selected=%s reduction_percent=%s',
        result.sentence_count,
        result.selected_count,
        result.reduction_percent,
    )
    return SummarizeResponse(
        ok=True,
        summary=result.summary,
        sentence_count=result.sentence_count,
        selected_count=result.selected_count,
        word_count=result.word_count,
        char_count=result.char_count,
        reduction_percent=result.reduction_percent,
    )


@app.post('/highlight', response_model=HighlightResponse)
def highlight_keyword(payload: HighlightRequest):
    result = highlight(payload.text, payload.keyword)
    return HighlightResponse(ok=True, highlighted_text=result.text, count=result.count)


@app.post('/strip-markup', response_model=StripMarkupResponse)
def strip_highlight_markup(payload: StripMarkupRequest):
    return StripMarkupResponse(ok=True, text=strip_markup(payload.text))


@app.get('/languages', response_model=LanguagesResponse)
def languages():
    return LanguagesResponse(
        ok=True,
        translation=[LanguageOut(code=code, name=name) for code, name in TRANSLATION_LANGUAGES.items()],
        speech=[LanguageOut(code=code, name=name) for code, name in SPEECH_LANGUAGES.items()],
    )


@app.post('/translate', response_model=TranslateResponse)
def translate(payload: TranslateRequest):
    translation_provider: TranslationProvider = app.state.translation_provider
    translated, endpoint = translation_provider.translate(payload.text, payload.target)
    logger.info('translate target=%s endpoint=%s chars=%s', payload.target, endpoint, len(payload.text))
    return TranslateResponse(
        ok=True,
        translated_text=translated,
        target=payload.target,
        target_name=TRANSLATION_LANGUAGES[payload.target],
        endpoint=endpoint,
    )


@app.post('/ocr', response_model=OcrResponse)
async def recognize_text(
    request: Request,
    image: UploadFile = File(...),
    language: str = Form(default='eng'),
    clean: bool = Form(default=False),
):
    request_id = _request_id(request)
    img = decode_upload(await image.read(), settings.max_image_bytes)
    text_provider = app.state.text_provider

    with measure_ms() as elapsed:
        try:
            result = await asyncio.to_thread(text_provider.recognize, img, language)
        except Exception as exc:
            logger.warning('OCR failed request_id=%s error=%s', request_id, exc)
            raise SmartVisionError(
                'OCR_FAILED',
                'Unable to process the image. Please try with a clearer image.',
                status_code=502,
            ) from exc
        latency_ms = elapsed()

    text = clean_recognized_text(result.text) if clean else result.text
    logger.info('ocr request_id=%s chars=%s clean=%s latency_ms=%s', request_id, len(text), clean, latency_ms)
    return OcrResponse(
        ok=True,
        model=text_provider.model_id,
        text=text,
        confidence=result.confidence,
        latency_ms=latency_ms,
    )


@app.post('/detect', response_model=DetectResponse)
async def detect(request: Request, image: UploadFile = File(...)):
    request_id = _request_id(request)
    img = decode_upload(await image.read(), settings.max_image_bytes)
    vision: LiveVisionSession = app.state.vision
    detector = await vision.ensure_detector()
    result = await asyncio.to_thread(detector.detect, img)

    detections = [
        describe_detection(d, vision.labels) for d in result.detections if d.confidence >= settings.conf_threshold
    ]
    ocr_candidate = detections[0] if detections and detections[0]['texty'] else None
    logger.info(
        'detect request_id=%s detections=%s ocr_candidate=%s latency_ms=%s',
        request_id,
        len(detections),
        ocr_candidate['label'] if ocr_candidate else None,
        result.latency_ms,
    )
    return DetectResponse(
        ok=True,
        model=result.model_id,
        latency_ms=result.latency_ms,
        image_size=list(result.image_size),
        detections=detections,
        ocr_candidate=ocr_candidate,
    )


def _speak_in_background(speech_provider: SpeechProvider, text: str, language: str) -> None:
    try:
        speech_provider.speak(text, language, SCRIPT_SPEECH_RATE, SCRIPT_SPEECH_PITCH)
    except Exception:
        logger.exception('Speech output failed language=%s', language)


@app.post('/speak', response_model=SpeakResponse)
def speak(payload: SpeakRequest, background_tasks: BackgroundTasks):
    if not payload.text.strip():
        raise SmartVisionError('MISSING_TEXT', 'Please provide text to speak.', status_code=422)
    if payload.language not in SPEECH_LANGUAGES:
        raise SmartVisionError(
            'UNSUPPORTED_LANGUAGE',
            f'Unsupported speech language {payload.language!r}.',
            status_code=422,
            details={'supported': sorted(SPEECH_LANGUAGES)},
        )
    speech_provider: SpeechProvider = app.state.speech_provider
    speech_status = speech_provider.status()
    if not speech_status.get('available'):
        raise SmartVisionError(
            'SPEECH_UNAVAILABLE',
            speech_status.get('message') or 'Text-to-speech is not available.',
            status_code=503,
        )

    background_tasks.add_task(_speak_in_background, speech_provider, payload.text, payload.language)
    return SpeakResponse(ok=True, provider=speech_provider.model_id, language=payload.language, chars=len(payload.text))


@app.post('/speak/stop', response_model=SpeakStopResponse)
def stop_speaking():
    speech_provider: SpeechProvider = app.state.speech_provider
    speech_provider.cancel()
    logger.info('speech cancelled provider=%s', speech_provider.model_id)
    return SpeakStopResponse(ok=True, provider=speech_provider.model_id)


@app.post('/vision/start', response_model=VisionStatusResponse)
async def vision_start():
    vision: LiveVisionSession = app.state.vision
    return VisionStatusResponse(**await vision.start())


@app.post('/vision/stop', response_model=VisionStatusResponse)
async def vision_stop():
    vision: LiveVisionSession = app.state.vision
    return VisionStatusResponse(**await vision.stop())


@app.get('/vision/status', response_model=VisionStatusResponse)
async def vision_status():
    vision: LiveVisionSession = app.state.vision
    return VisionStatusResponse(**vision.status())


@app.post('/vision/speech', response_model=VisionStatusResponse)
async def vision_speech(payload: SpeechToggleRequest):
    vision: LiveVisionSession = app.state.vision
    await asyncio.to_thread(vision.set_speech_enabled, payload.enabled)
    return VisionStatusResponse(**vision.status())


@app.get('/vision/frame')
async def vision_frame():
    vision: LiveVisionSession = app.state.vision
    overlay = vision.latest_overlay
    if overlay is None:
        raise SmartVisionError('NO_FRAME', 'No frame has been processed yet.', status_code=404)
    return Response(content=encode_frame_jpeg(overlay), media_type='image/jpeg')


def run() -> None:
    import uvicorn

    uvicorn.run('smartvision.main:app', host=settings.host, port=settings.port, log_level=settings.log_level.lower())
