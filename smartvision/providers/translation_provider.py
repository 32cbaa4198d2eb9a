import logging

import httpx

from smartvision.core.errors import SmartVisionError
from smartvision.core.languages import TRANSLATION_LANGUAGES

logger = logging.getLogger('smartvision.providers')


class TranslationProvider:
    """LibreTranslate client that walks an ordered list of mirrors until one answers."""

    def __init__(self, endpoints: list[str], timeout_ms: int = 15000) -> None:
        if not endpoints:
            raise ValueError('TranslationProvider requires at least one endpoint.')
        self._endpoints = list(endpoints)
        self._timeout = max(int(timeout_ms), 1000) / 1000.0

    @property
    def endpoints(self) -> list[str]:
        return list(self._endpoints)

    def translate(self, text: str, target: str, source: str = 'auto') -> tuple[str, str]:
        """Return (translated_text, endpoint_used)."""
        if not (text or '').strip():
            raise SmartVisionError('MISSING_TEXT', 'Please enter some text to translate.', status_code=422)
        if target not in TRANSLATION_LANGUAGES:
            raise SmartVisionError(
                'UNSUPPORTED_LANGUAGE',
                f'Unsupported target language {target!r}.',
                status_code=422,
                details={'supported': sorted(TRANSLATION_LANGUAGES)},
            )

        payload = {'q': text, 'source': source, 'target': target, 'format': 'text'}
        attempts: list[dict[str, str]] = []
        with httpx.Client(timeout=self._timeout) as client:
            for url in self._endpoints:
                try:
                    response = client.post(url, json=payload)
                    if not response.is_success:
                        raise RuntimeError(f'HTTP {response.status_code}')
                    body = response.json()
                    translated = ''
                    if isinstance(body, dict):
                        translated = str(body.get('translatedText') or body.get('translation') or '')
                    if not translated:
                        raise RuntimeError('Empty translation')
                    return translated, url
                except (httpx.HTTPError, ValueError, RuntimeError) as exc:
                    logger.warning('translation endpoint failed url=%s error=%s', url, exc)
                    attempts.append({'endpoint': url, 'error': str(exc)})

        raise SmartVisionError(
            'TRANSLATION_FAILED',
            'Translation failed. Please try again.',
            status_code=502,
            details={'attempts': attempts},
        )
