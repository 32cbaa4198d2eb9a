import re
from dataclasses import dataclass

from smartvision.core.errors import SmartVisionError

MARK_OPEN = '<mark class="highlight">'
MARK_CLOSE = '</mark>'
_MARKUP = re.compile(r'<mark[^>]*>|</mark>')


@dataclass
class HighlightResult:
    text: str
    count: int


def highlight(text: str, keyword: str) -> HighlightResult:
    if not (text or '').strip() or not (keyword or '').strip():
        raise SmartVisionError('MISSING_INPUT', 'Please enter both text and keyword to search.', status_code=422)

    # The keyword is matched literally, never as a pattern.
    pattern = re.compile(re.escape(keyword), re.IGNORECASE)
    annotated, count = pattern.subn(lambda match: f'{MARK_OPEN}{match.group(0)}{MARK_CLOSE}', text)
    return HighlightResult(text=annotated, count=count)


def strip_markup(text: str) -> str:
    return _MARKUP.sub('', text or '')
