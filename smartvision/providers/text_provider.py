import logging
import shutil

from PIL import Image, ImageOps

from smartvision.core.types import OcrResult

logger = logging.getLogger('smartvision.providers')

# Tesseract language code -> PaddleOCR language code.
_PADDLE_LANGS = {'eng': 'en', 'hin': 'hi', 'spa': 'es', 'fra': 'fr', 'tam': 'ta', 'tel': 'te'}


def _prepare_image(image) -> Image.Image:
    base = image.convert('RGB')
    # Crops from small detections are too small for reliable recognition.
    w, h = base.size
    if max(w, h) < 400:
        scale = 2.0
        base = base.resize((max(1, int(w * scale)), max(1, int(h * scale))), Image.Resampling.BICUBIC)
    return base


def _lines_from_tesseract_data(data: dict) -> tuple[str, float]:
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []
    n = len(data.get('text', []))
    for i in range(n):
        text = (data['text'][i] or '').strip()
        if not text:
            continue
        try:
            conf = float(data.get('conf', ['-1'] * n)[i])
        except (TypeError, ValueError):
            conf = -1.0
        if conf < 0:
            continue
        key = (
            int(data.get('block_num', [0] * n)[i]),
            int(data.get('par_num', [0] * n)[i]),
            int(data.get('line_num', [0] * n)[i]),
        )
        lines.setdefault(key, []).append(text)
        confidences.append(conf)

    joined = '\n'.join(' '.join(words) for _, words in sorted(lines.items()))
    mean_conf = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0
    return joined, max(0.0, min(1.0, mean_conf))


class TextProvider:
    def recognize(self, image, language: str = 'eng') -> OcrResult:
        raise NotImplementedError

    @property
    def model_id(self) -> str:
        return 'text-provider'

    def status(self) -> dict:
        return {'available': True, 'message': None}


class TesseractTextProvider(TextProvider):
    def __init__(self) -> None:
        self._available = shutil.which('tesseract') is not None
        self._message = None if self._available else 'tesseract binary not found in PATH'

    @property
    def model_id(self) -> str:
        return 'tesseract-ocr'

    def status(self) -> dict:
        return {'available': self._available, 'message': self._message}

    def recognize(self, image, language: str = 'eng') -> OcrResult:
        if not self._available:
            raise RuntimeError(self._message)
        import pytesseract

        prepared = _prepare_image(image)
        data = pytesseract.image_to_data(
            ImageOps.grayscale(prepared),
            lang=language,
            config='--oem 3 --psm 6',
            output_type=pytesseract.Output.DICT,
        )
        text, confidence = _lines_from_tesseract_data(data)
        return OcrResult(text=text.strip(), confidence=confidence)


class PaddleTextProvider(TextProvider):
    def __init__(self, language: str = 'eng') -> None:
        self._engine = None
        self._message = None
        try:
            from paddleocr import PaddleOCR

            self._engine = PaddleOCR(use_angle_cls=True, lang=_PADDLE_LANGS.get(language, 'en'), show_log=False)
        except Exception as exc:
            self._message = f'paddleocr unavailable: {exc}'

    @property
    def model_id(self) -> str:
        return 'paddleocr'

    def status(self) -> dict:
        return {'available': self._engine is not None, 'message': self._message}

    def recognize(self, image, language: str = 'eng') -> OcrResult:
        if self._engine is None:
            raise RuntimeError(self._message)
        import numpy as np

        result = self._engine.ocr(np.array(_prepare_image(image)), cls=True)
        lines = result[0] if isinstance(result, list) and result else []
        texts: list[str] = []
        confidences: list[float] = []
        for line in lines or []:
            if not isinstance(line, (list, tuple)) or len(line) < 2:
                continue
            txt_meta = line[1]
            if not isinstance(txt_meta, (list, tuple)) or len(txt_meta) < 2:
                continue
            text = str(txt_meta[0] or '').strip()
            if not text:
                continue
            texts.append(text)
            try:
                confidences.append(max(0.0, min(1.0, float(txt_meta[1]))))
            except (TypeError, ValueError):
                confidences.append(0.0)

        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return OcrResult(text='\n'.join(texts), confidence=confidence)


def create_text_provider(name: str, language: str = 'eng') -> TextProvider:
    provider = name.strip().lower()
    if provider == 'paddleocr':
        paddle = PaddleTextProvider(language=language)
        if paddle.status().get('available'):
            return paddle
        logger.warning('paddleocr unavailable, falling back to tesseract message=%s', paddle.status().get('message'))
        return TesseractTextProvider()
    if provider == 'tesseract':
        return TesseractTextProvider()
    raise ValueError(f'Unsupported TEXT_PROVIDER={name!r}')
