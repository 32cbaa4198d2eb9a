import re

_BLANK_LINES = re.compile(r'\n\s*\n')
_TIGHT_SENTENCE_BREAK = re.compile(r'([.!?])\s*([A-Z])')


def clean_recognized_text(text: str) -> str:
    """Tidy raw OCR output of handwriting: one newline between blocks, one space after a sentence end."""
    cleaned = _BLANK_LINES.sub('\n', text or '')
    cleaned = _TIGHT_SENTENCE_BREAK.sub(r'\1 \2', cleaned)
    return cleaned.strip()
