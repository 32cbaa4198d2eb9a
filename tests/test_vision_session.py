import asyncio
import threading
import time

import pytest
from PIL import Image

from smartvision.core.detector import Detector
from smartvision.core.errors import SmartVisionError
from smartvision.core.types import Detection, DetectionResult, OcrResult
from smartvision.providers.camera import Camera, CameraUnavailableError
from smartvision.providers.speech_provider import SpeechProvider
from smartvision.providers.text_provider import TextProvider
from smartvision.vision_session import STATE_DETECTING, STATE_IDLE, LiveVisionSession, compose_utterance


class FakeCamera(Camera):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.started = 0
        self.stopped = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def start(self) -> None:
        if self.fail:
            raise CameraUnavailableError('permission denied')
        self.started += 1
        self._open = True

    def read_frame(self) -> Image.Image:
        if not self._open:
            raise RuntimeError('camera is not started')
        return Image.new('RGB', (320, 240), color='white')

    def stop(self) -> None:
        self.stopped += 1
        self._open = False


class FakeDetector(Detector):
    def __init__(self, labels=('book',), failures: int = 0):
        self.labels = labels
        self.failures = failures
        self.calls = 0

    @property
    def model_id(self) -> str:
        return 'fake-detector'

    def detect(self, image) -> DetectionResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError('inference hiccup')
        detections = [
            Detection(label=label, confidence=0.9 - index * 0.1, bbox=[10, 10, 120, 60])
            for index, label in enumerate(self.labels)
        ]
        return DetectionResult(detections=detections, model_id=self.model_id, latency_ms=1, image_size=image.size)


class FakeTextProvider(TextProvider):
    def __init__(self, texts=('EXIT',), gate: threading.Event | None = None):
        self.texts = list(texts)
        self.gate = gate
        self.calls = 0

    def recognize(self, image, language: str = 'eng') -> OcrResult:
        self.calls += 1
        index = min(self.calls, len(self.texts)) - 1
        if self.gate is not None:
            self.gate.wait(5)
        return OcrResult(text=self.texts[index], confidence=0.9)


class FakeSpeech(SpeechProvider):
    def __init__(self):
        self.utterances = []
        self.cancelled = 0

    def speak(self, text: str, language: str = 'en-US', rate: float = 1.0, pitch: float = 1.0) -> None:
        self.utterances.append(text)

    def cancel(self) -> None:
        self.cancelled += 1


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def wait_until(predicate, timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError('condition not met in time')
        await asyncio.sleep(0.005)


def make_session(
    camera=None,
    detector=None,
    text_provider=None,
    speech=None,
    clock=None,
    detector_factory=None,
    **kwargs,
) -> LiveVisionSession:
    detector = detector or FakeDetector()
    kwargs.setdefault('frame_interval_s', 0.001)
    return LiveVisionSession(
        camera=camera or FakeCamera(),
        detector_factory=detector_factory or (lambda: detector),
        text_provider=text_provider or FakeTextProvider(),
        speech_provider=speech or FakeSpeech(),
        clock=clock or FakeClock(),
        **kwargs,
    )


def frames(session: LiveVisionSession) -> int:
    return session.status()['frames_processed']


def test_start_runs_detection_and_stop_releases_camera():
    async def scenario():
        camera = FakeCamera()
        session = make_session(camera=camera)

        started = await session.start()
        assert started['running'] is True
        await wait_until(lambda: frames(session) >= 3)
        status = session.status()
        assert status['state'] == STATE_DETECTING
        assert status['model'] == 'fake-detector'
        assert status['detections'][0]['label'] == 'book'
        assert session.latest_overlay is not None

        stopped = await session.stop()
        return camera, stopped, session

    camera, stopped, session = asyncio.run(scenario())

    assert stopped['state'] == STATE_IDLE
    assert stopped['frames_processed'] == 0
    assert camera.started == 1
    assert camera.stopped == 1
    assert camera.is_open is False
    assert session.latest_overlay is None


def test_ocr_within_cooldown_is_not_repeated():
    async def scenario():
        clock = FakeClock()
        text = FakeTextProvider(['EXIT'])
        session = make_session(text_provider=text, clock=clock, ocr_cooldown_s=1.5)

        await session.start()
        await wait_until(lambda: text.calls == 1 and not session.status()['ocr_busy'])
        clock.now = 0.5
        seen = frames(session)
        await wait_until(lambda: frames(session) >= seen + 5)
        calls = text.calls
        await session.stop()
        return calls

    assert asyncio.run(scenario()) == 1


def test_ocr_after_cooldown_runs_again():
    async def scenario():
        clock = FakeClock()
        text = FakeTextProvider(['EXIT'])
        session = make_session(text_provider=text, clock=clock, ocr_cooldown_s=1.5)

        await session.start()
        await wait_until(lambda: text.calls == 1 and not session.status()['ocr_busy'])
        clock.now = 2.0
        await wait_until(lambda: text.calls == 2 and not session.status()['ocr_busy'])
        seen = frames(session)
        await wait_until(lambda: frames(session) >= seen + 5)
        calls = text.calls
        ocr_text = session.status()['ocr_text']
        await session.stop()
        return calls, ocr_text

    calls, ocr_text = asyncio.run(scenario())

    assert calls == 2
    assert ocr_text == 'EXIT'


def test_only_one_ocr_call_is_in_flight():
    async def scenario():
        gate = threading.Event()
        clock = FakeClock()
        text = FakeTextProvider(['EXIT'], gate=gate)
        session = make_session(text_provider=text, clock=clock, ocr_cooldown_s=0.0)

        await session.start()
        await wait_until(lambda: text.calls == 1)
        clock.now = 10.0
        seen = frames(session)
        await wait_until(lambda: frames(session) >= seen + 5)
        calls_while_busy = text.calls
        busy = session.status()['ocr_busy']
        gate.set()
        await session.stop()
        pending = session.pending_ocr
        if pending is not None:
            await pending
        return calls_while_busy, busy

    calls_while_busy, busy = asyncio.run(scenario())

    assert calls_while_busy == 1
    assert busy is True


def test_repeated_text_is_spoken_once():
    async def scenario():
        clock = FakeClock()
        text = FakeTextProvider(['EXIT', 'EXIT'])
        speech = FakeSpeech()
        session = make_session(text_provider=text, speech=speech, clock=clock, speech_enabled=True)

        await session.start()
        await wait_until(lambda: len(speech.utterances) == 1)
        clock.now = 2.0
        await wait_until(lambda: text.calls == 2 and not session.status()['ocr_busy'])
        seen = frames(session)
        await wait_until(lambda: frames(session) >= seen + 5)
        await session.stop()
        return speech.utterances

    assert asyncio.run(scenario()) == [compose_utterance('book', 'EXIT')]


def test_new_text_is_spoken_again():
    async def scenario():
        clock = FakeClock()
        text = FakeTextProvider(['EXIT', 'ENTRY'])
        speech = FakeSpeech()
        session = make_session(text_provider=text, speech=speech, clock=clock, speech_enabled=True)

        await session.start()
        await wait_until(lambda: len(speech.utterances) == 1)
        clock.now = 2.0
        await wait_until(lambda: len(speech.utterances) == 2)
        await session.stop()
        return speech.utterances

    assert asyncio.run(scenario()) == [
        'Detected book. Label says EXIT.',
        'Detected book. Label says ENTRY.',
    ]


def test_speech_disabled_keeps_ocr_text_silent():
    async def scenario():
        speech = FakeSpeech()
        text = FakeTextProvider(['EXIT'])
        session = make_session(text_provider=text, speech=speech, speech_enabled=False)

        await session.start()
        await wait_until(lambda: session.status()['ocr_text'] == 'EXIT')
        await session.stop()
        return speech.utterances

    assert asyncio.run(scenario()) == []


def test_stop_during_ocr_discards_late_result():
    async def scenario():
        gate = threading.Event()
        camera = FakeCamera()
        speech = FakeSpeech()
        text = FakeTextProvider(['EXIT'], gate=gate)
        session = make_session(camera=camera, text_provider=text, speech=speech, speech_enabled=True)

        await session.start()
        await wait_until(lambda: text.calls == 1)
        pending = session.pending_ocr
        stopped = await session.stop()
        camera_open_after_stop = camera.is_open
        gate.set()
        await pending
        return stopped, camera_open_after_stop, session.status(), speech.utterances

    stopped, camera_open_after_stop, status, utterances = asyncio.run(scenario())

    assert stopped['state'] == STATE_IDLE
    assert camera_open_after_stop is False
    assert status['ocr_text'] == ''
    assert status['ocr_busy'] is False
    assert utterances == []


def test_non_texty_top_detection_skips_ocr():
    async def scenario():
        text = FakeTextProvider(['EXIT'])
        session = make_session(detector=FakeDetector(labels=('person', 'book')), text_provider=text)

        await session.start()
        await wait_until(lambda: frames(session) >= 5)
        status = session.status()
        await session.stop()
        return text.calls, status

    calls, status = asyncio.run(scenario())

    assert calls == 0
    assert status['detections'][0]['sensitive'] is True
    assert status['detections'][0]['color'] == '#ef4444'


def test_low_confidence_detections_are_dropped():
    async def scenario():
        text = FakeTextProvider(['EXIT'])
        session = make_session(
            detector=FakeDetector(labels=('person', 'book')),
            text_provider=text,
            min_confidence=0.85,
        )

        await session.start()
        await wait_until(lambda: frames(session) >= 3)
        labels = [row['label'] for row in session.status()['detections']]
        await session.stop()
        return labels

    assert asyncio.run(scenario()) == ['person']


def test_camera_failure_leaves_session_idle():
    async def scenario():
        session = make_session(camera=FakeCamera(fail=True))

        with pytest.raises(SmartVisionError) as excinfo:
            await session.start()
        return excinfo.value, session.status()

    error, status = asyncio.run(scenario())

    assert error.code == 'CAMERA_UNAVAILABLE'
    assert error.status_code == 503
    assert status['state'] == STATE_IDLE
    assert status['last_error'] == 'CAMERA_UNAVAILABLE'


def test_model_load_failure_returns_to_idle():
    def broken_factory():
        raise RuntimeError('weights missing')

    async def scenario():
        camera = FakeCamera()
        session = make_session(camera=camera, detector_factory=broken_factory)

        await session.start()
        await wait_until(lambda: session.status()['last_error'] == 'MODEL_LOAD_FAILED')
        return camera, session.status()

    camera, status = asyncio.run(scenario())

    assert status['state'] == STATE_IDLE
    assert status['model_loaded'] is False
    assert camera.stopped == 1


class FailingTextProvider(TextProvider):
    def __init__(self):
        self.calls = 0

    def recognize(self, image, language: str = 'eng') -> OcrResult:
        self.calls += 1
        raise RuntimeError('recogniser crashed')


def test_failed_ocr_attempt_still_cools_down():
    async def scenario():
        clock = FakeClock()
        text = FailingTextProvider()
        session = make_session(text_provider=text, clock=clock, ocr_cooldown_s=1.5)

        await session.start()
        await wait_until(lambda: text.calls == 1 and not session.status()['ocr_busy'])
        clock.now = 0.5
        seen = frames(session)
        await wait_until(lambda: frames(session) >= seen + 5)
        calls_in_window = text.calls
        clock.now = 2.0
        await wait_until(lambda: text.calls == 2)
        status = session.status()
        await session.stop()
        return calls_in_window, status

    calls_in_window, status = asyncio.run(scenario())

    assert calls_in_window == 1
    assert status['ocr_text'] == ''
    assert status['running'] is True


def test_stop_during_model_load_keeps_loaded_model():
    gate = threading.Event()
    loads = []

    def slow_factory():
        loads.append(1)
        gate.wait(5)
        return FakeDetector()

    async def scenario():
        session = make_session(detector_factory=slow_factory)

        await session.start()
        await wait_until(lambda: len(loads) == 1)
        stopped = await session.stop()
        gate.set()
        await wait_until(lambda: session.status()['model_loaded'])
        await session.start()
        await wait_until(lambda: frames(session) >= 1)
        await session.stop()
        return stopped

    stopped = asyncio.run(scenario())

    assert stopped['state'] == STATE_IDLE
    assert len(loads) == 1


def test_frame_errors_do_not_stop_the_loop():
    async def scenario():
        detector = FakeDetector(failures=3)
        session = make_session(detector=detector)

        await session.start()
        await wait_until(lambda: frames(session) >= 2)
        running = session.running
        await session.stop()
        return detector.calls, running

    calls, running = asyncio.run(scenario())

    assert calls >= 5
    assert running is True


def test_detector_is_loaded_once_across_restarts():
    loads = []

    def factory():
        loads.append(1)
        return FakeDetector()

    async def scenario():
        session = make_session(detector_factory=factory)
        for _ in range(2):
            await session.start()
            await wait_until(lambda: frames(session) >= 1)
            await session.stop()

    asyncio.run(scenario())

    assert len(loads) == 1


def test_stop_is_idempotent():
    async def scenario():
        camera = FakeCamera()
        session = make_session(camera=camera)
        first = await session.stop()
        await session.start()
        await session.stop()
        second = await session.stop()
        return first, second

    first, second = asyncio.run(scenario())

    assert first['state'] == STATE_IDLE
    assert second['state'] == STATE_IDLE


def test_start_twice_keeps_single_loop():
    async def scenario():
        camera = FakeCamera()
        session = make_session(camera=camera)
        await session.start()
        await session.start()
        await session.stop()
        return camera.started

    assert asyncio.run(scenario()) == 1


def test_disabling_speech_cancels_current_utterance():
    speech = FakeSpeech()
    session = make_session(speech=speech, speech_enabled=True)

    session.set_speech_enabled(False)

    assert session.speech_enabled is False
    assert speech.cancelled == 1
