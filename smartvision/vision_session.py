"""Live detection -> OCR -> speech loop.

One ``LiveVisionSession`` owns the camera, the detection model handle and a
``LoopState`` that lives from ``start()`` to ``stop()``. Frames are processed
strictly one after another on the event loop; blocking provider calls run in
worker threads. At most one OCR call is in flight and attempts are spaced by a
cooldown whether they succeed or not. Speech is fire-and-forget.

Every ``start()`` bumps a generation counter. OCR calls carry the generation
they were issued under and their results are dropped once it is stale, so a
late OCR answer never leaks into a newer session or a stopped one.
"""

import asyncio
import contextlib
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from PIL import Image

from smartvision.config import Settings
from smartvision.core.detector import Detector, create_detector
from smartvision.core.errors import SmartVisionError
from smartvision.core.image_region import crop_to_bbox
from smartvision.core.labels import LabelTable, build_label_table
from smartvision.core.overlay import draw_detections
from smartvision.core.types import Detection, OcrResult
from smartvision.providers.camera import Camera, OpenCVCamera
from smartvision.providers.speech_provider import SpeechProvider
from smartvision.providers.text_provider import TextProvider

logger = logging.getLogger('smartvision.vision')

STATE_IDLE = 'idle'
STATE_CAPTURING = 'capturing'
STATE_DETECTING = 'detecting'


def compose_utterance(label: str, text: str) -> str:
    return f'Detected {label}. Label says {text}.'


def describe_detection(detection: Detection, labels: LabelTable) -> dict[str, Any]:
    behavior = labels.behavior(detection.label)
    return {
        'label': detection.label,
        'confidence': detection.confidence,
        'bbox': detection.bbox,
        'texty': behavior.texty,
        'sensitive': behavior.sensitive,
        'color': '#%02x%02x%02x' % labels.overlay_color(detection.label),
    }


@dataclass
class LoopState:
    generation: int = 0
    last_ocr_at: float | None = None
    last_spoken: str = ''
    detections: list[Detection] = field(default_factory=list)
    ocr_busy: bool = False
    ocr_text: str = ''
    frames_processed: int = 0
    overlay: Image.Image | None = None


class LiveVisionSession:
    def __init__(
        self,
        camera: Camera,
        detector_factory: Callable[[], Detector],
        text_provider: TextProvider,
        speech_provider: SpeechProvider,
        labels: LabelTable | None = None,
        *,
        min_confidence: float = 0.0,
        ocr_language: str = 'eng',
        ocr_cooldown_s: float = 1.5,
        speech_enabled: bool = False,
        speech_language: str = 'en-US',
        speech_rate: float = 1.0,
        speech_pitch: float = 1.05,
        frame_interval_s: float = 0.016,
        overlay_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._camera = camera
        self._detector_factory = detector_factory
        self._text_provider = text_provider
        self._speech_provider = speech_provider
        self._labels = labels or build_label_table()
        self._min_confidence = min_confidence
        self._ocr_language = ocr_language
        self._ocr_cooldown_s = ocr_cooldown_s
        self._speech_enabled = speech_enabled
        self._speech_language = speech_language
        self._speech_rate = speech_rate
        self._speech_pitch = speech_pitch
        self._frame_interval_s = frame_interval_s
        self._overlay_enabled = overlay_enabled
        self._clock = clock

        self._detector: Detector | None = None
        self._load_task: asyncio.Task | None = None
        self._control_lock = asyncio.Lock()
        self._state_name = STATE_IDLE
        self._generation = 0
        self._state = LoopState()
        self._task: asyncio.Task | None = None
        self._ocr_task: asyncio.Task | None = None
        self._speech_tasks: set[asyncio.Task] = set()
        self._last_error: str | None = None

    @property
    def state(self) -> str:
        return self._state_name

    @property
    def running(self) -> bool:
        return self._state_name != STATE_IDLE

    @property
    def labels(self) -> LabelTable:
        return self._labels

    @property
    def latest_overlay(self) -> Image.Image | None:
        return self._state.overlay

    @property
    def pending_ocr(self) -> asyncio.Task | None:
        return self._ocr_task

    @property
    def speech_enabled(self) -> bool:
        return self._speech_enabled

    def set_speech_enabled(self, enabled: bool) -> None:
        self._speech_enabled = bool(enabled)
        if not enabled:
            self._speech_provider.cancel()

    async def ensure_detector(self) -> Detector:
        """Load the detection model once; a caller cancelled mid-load does not abort the load."""
        if self._detector is not None:
            return self._detector
        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load_detector())
        return await asyncio.shield(self._load_task)

    async def _load_detector(self) -> Detector:
        try:
            detector = await asyncio.to_thread(self._detector_factory)
        except Exception as exc:
            logger.exception('Detection model failed to load')
            raise SmartVisionError(
                'MODEL_LOAD_FAILED',
                'Detection model failed to load. Please retry.',
                status_code=503,
            ) from exc
        finally:
            self._load_task = None
        self._detector = detector
        logger.info('Detection model loaded model=%s', detector.model_id)
        return detector

    async def start(self) -> dict[str, Any]:
        async with self._control_lock:
            if self.running:
                return self.status()
            try:
                await asyncio.to_thread(self._camera.start)
            except Exception as exc:
                self._last_error = 'CAMERA_UNAVAILABLE'
                logger.warning('Camera acquisition failed error=%s', exc)
                raise SmartVisionError(
                    'CAMERA_UNAVAILABLE',
                    'Camera access denied or unavailable. Please allow camera access.',
                    status_code=503,
                ) from exc

            self._generation += 1
            self._state = LoopState(generation=self._generation)
            self._state_name = STATE_CAPTURING
            self._last_error = None
            self._task = asyncio.create_task(self._run(self._generation))
            logger.info('Live vision started generation=%s', self._generation)
            return self.status()

    async def stop(self) -> dict[str, Any]:
        async with self._control_lock:
            task = self._task
            self._task = None
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            was_running = self.running
            self._reset()
            await asyncio.to_thread(self._camera.stop)
            if was_running:
                logger.info('Live vision stopped generation=%s', self._generation)
            return self.status()

    def _reset(self) -> None:
        self._generation += 1
        self._state = LoopState(generation=self._generation)
        self._state_name = STATE_IDLE

    async def _run(self, generation: int) -> None:
        try:
            await self.ensure_detector()
        except SmartVisionError as exc:
            async with self._control_lock:
                if generation == self._generation:
                    self._task = None
                    self._reset()
                    self._last_error = exc.code
                    await asyncio.to_thread(self._camera.stop)
            return

        if generation != self._generation:
            return
        self._state_name = STATE_DETECTING
        while generation == self._generation:
            await self.process_frame()
            await asyncio.sleep(self._frame_interval_s)

    async def process_frame(self) -> bool:
        """Run one detection pass; returns False when the frame was skipped."""
        state = self._state
        detector = self._detector
        if not self.running or detector is None:
            return False

        try:
            frame = await asyncio.to_thread(self._camera.read_frame)
            result = await asyncio.to_thread(detector.detect, frame)
        except Exception:
            logger.debug('Frame skipped generation=%s', state.generation, exc_info=True)
            return False

        if state.generation != self._generation:
            return False

        try:
            detections = [d for d in result.detections if d.confidence >= self._min_confidence]
            state.detections = detections
            state.frames_processed += 1
            if self._overlay_enabled:
                state.overlay = draw_detections(frame, detections, self._labels)
            if detections and self._labels.is_texty(detections[0].label):
                self._maybe_start_ocr(state, detections[0], frame)
        except Exception:
            logger.debug('Frame post-processing failed generation=%s', state.generation, exc_info=True)
            return False
        return True

    def _maybe_start_ocr(self, state: LoopState, detection: Detection, frame: Image.Image) -> bool:
        now = self._clock()
        if state.ocr_busy:
            return False
        if state.last_ocr_at is not None and now - state.last_ocr_at < self._ocr_cooldown_s:
            return False
        crop = crop_to_bbox(frame, detection.bbox)
        if crop is None:
            return False

        state.ocr_busy = True
        self._ocr_task = asyncio.create_task(self._run_ocr(state, detection, crop, now))
        return True

    async def _run_ocr(self, state: LoopState, detection: Detection, crop: Image.Image, invoked_at: float) -> None:
        result: OcrResult | None = None
        try:
            result = await asyncio.to_thread(self._text_provider.recognize, crop, self._ocr_language)
        except Exception:
            logger.debug('OCR attempt failed label=%s', detection.label, exc_info=True)
        finally:
            state.ocr_busy = False
            state.last_ocr_at = invoked_at

        if state.generation != self._generation:
            logger.debug('Discarding stale OCR result generation=%s current=%s', state.generation, self._generation)
            return

        text = (result.text if result else '').strip()
        if not text:
            return
        state.ocr_text = text
        if self._speech_enabled and text != state.last_spoken:
            self._speak(compose_utterance(detection.label, text))
            state.last_spoken = text

    def _speak(self, utterance: str) -> None:
        task = asyncio.create_task(
            asyncio.to_thread(
                self._speech_provider.speak,
                utterance,
                self._speech_language,
                self._speech_rate,
                self._speech_pitch,
            )
        )
        self._speech_tasks.add(task)
        task.add_done_callback(self._on_speech_done)

    def _on_speech_done(self, task: asyncio.Task) -> None:
        self._speech_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning('Speech output failed error=%s', exc)

    def status(self) -> dict[str, Any]:
        state = self._state
        return {
            'state': self._state_name,
            'running': self.running,
            'model_loaded': self._detector is not None,
            'model': self._detector.model_id if self._detector is not None else None,
            'speech_enabled': self._speech_enabled,
            'detections': [describe_detection(d, self._labels) for d in state.detections],
            'ocr_text': state.ocr_text,
            'ocr_busy': state.ocr_busy,
            'last_error': self._last_error,
            'frames_processed': state.frames_processed,
        }


def create_vision_session(
    settings: Settings,
    text_provider: TextProvider,
    speech_provider: SpeechProvider,
) -> LiveVisionSession:
    return LiveVisionSession(
        camera=OpenCVCamera(settings.camera_index, settings.frame_width, settings.frame_height),
        detector_factory=functools.partial(create_detector, settings),
        text_provider=text_provider,
        speech_provider=speech_provider,
        labels=build_label_table(settings.texty_labels_extra, settings.sensitive_labels_extra),
        min_confidence=settings.conf_threshold,
        ocr_language=settings.ocr_language,
        ocr_cooldown_s=settings.ocr_cooldown_ms / 1000.0,
        speech_enabled=settings.speech_enabled,
        speech_language=settings.speech_language,
        speech_rate=settings.speech_rate,
        speech_pitch=settings.speech_pitch,
        frame_interval_s=settings.frame_interval_ms / 1000.0,
        overlay_enabled=settings.overlay_enabled,
    )
