import importlib.util
import logging
import threading

logger = logging.getLogger('smartvision.providers')

# pyttsx3 rates are words per minute; 1.0 maps to its default.
_BASE_WORDS_PER_MINUTE = 200
_CANCEL_WAIT_S = 2.0


def _voice_languages(voice) -> list[str]:
    values: list[str] = []
    for raw in getattr(voice, 'languages', None) or []:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8', errors='ignore')
        values.append(str(raw).lstrip('\x05').lower())
    return values


def pick_voice(voices, language: str):
    prefix = language.split('-')[0].lower()
    if not prefix:
        return None
    for voice in voices or []:
        if any(lang.startswith(prefix) for lang in _voice_languages(voice)):
            return voice
    for voice in voices or []:
        haystack = f"{getattr(voice, 'id', '')} {getattr(voice, 'name', '')}".lower()
        if f'/{prefix}' in haystack or haystack.startswith(prefix):
            return voice
    return None


class SpeechProvider:
    def speak(self, text: str, language: str = 'en-US', rate: float = 1.0, pitch: float = 1.0) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        return None

    @property
    def model_id(self) -> str:
        return 'speech-provider'

    def status(self) -> dict:
        return {'available': True, 'message': None}


class NullSpeechProvider(SpeechProvider):
    def __init__(self, message: str | None = None) -> None:
        self._message = message

    @property
    def model_id(self) -> str:
        return 'null-speech'

    def status(self) -> dict:
        return {'available': False, 'message': self._message or 'speech output disabled'}

    def speak(self, text: str, language: str = 'en-US', rate: float = 1.0, pitch: float = 1.0) -> None:
        logger.info('speech skipped provider=null language=%s chars=%s', language, len(text))


class Pyttsx3SpeechProvider(SpeechProvider):
    """Offline text-to-speech.

    ``pyttsx3.init()`` returns one cached engine per driver and that engine can
    only run a single loop, so utterances are played strictly one at a time.
    ``cancel()`` stops the current utterance and waits for its loop to return.
    """

    def __init__(self) -> None:
        self._available = importlib.util.find_spec('pyttsx3') is not None
        self._message = None if self._available else 'pyttsx3 is not installed'
        # Held for the whole say/runAndWait of one utterance.
        self._speak_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._engine = None

    @property
    def model_id(self) -> str:
        return 'pyttsx3'

    def status(self) -> dict:
        return {'available': self._available, 'message': self._message}

    def cancel(self) -> None:
        with self._state_lock:
            engine = self._engine
        if engine is None:
            return
        engine.stop()
        if self._speak_lock.acquire(timeout=_CANCEL_WAIT_S):
            self._speak_lock.release()
        else:
            logger.warning('speech loop did not stop within %ss', _CANCEL_WAIT_S)

    def speak(self, text: str, language: str = 'en-US', rate: float = 1.0, pitch: float = 1.0) -> None:
        if not self._available:
            raise RuntimeError(self._message)
        import pyttsx3

        self.cancel()
        with self._speak_lock:
            engine = pyttsx3.init()
            engine.setProperty('rate', int(_BASE_WORDS_PER_MINUTE * rate))
            voice = pick_voice(engine.getProperty('voices'), language)
            if voice is not None:
                engine.setProperty('voice', voice.id)
            # pyttsx3 exposes no pitch control.
            with self._state_lock:
                self._engine = engine
            try:
                engine.say(text)
                engine.runAndWait()
            finally:
                with self._state_lock:
                    self._engine = None


def create_speech_provider(name: str) -> SpeechProvider:
    provider = name.strip().lower()
    if provider == 'null':
        return NullSpeechProvider()
    if provider == 'pyttsx3':
        speech = Pyttsx3SpeechProvider()
        if speech.status().get('available'):
            return speech
        logger.warning('pyttsx3 unavailable, speech disabled message=%s', speech.status().get('message'))
        return NullSpeechProvider(message=speech.status().get('message'))
    raise ValueError(f'Unsupported SPEECH_PROVIDER={name!r}')
