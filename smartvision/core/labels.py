from dataclasses import dataclass

WARNING_COLOR = (239, 68, 68)
NEUTRAL_COLOR = (34, 197, 94)

# Object classes that plausibly carry printed text worth reading.
_TEXTY = {
    'book', 'bottle', 'tv', 'tvmonitor', 'monitor', 'laptop', 'cell phone', 'remote', 'keyboard',
    'stop sign', 'bench', 'backpack', 'handbag', 'suitcase', 'cup', 'wine glass', 'chair',
}
# Classes rendered with the warning colour.
_SENSITIVE = {'person', 'knife', 'scissors', 'bottle', 'stop sign'}


@dataclass(frozen=True)
class LabelBehavior:
    texty: bool = False
    sensitive: bool = False


def normalize_label(label: str) -> str:
    return ' '.join((label or '').strip().lower().split())


def parse_label_set(raw: str | None) -> set[str]:
    if not raw:
        return set()
    return {normalize_label(token) for token in raw.split(',') if token.strip()}


class LabelTable:
    def __init__(self, texty: set[str] | None = None, sensitive: set[str] | None = None):
        texty_set = {normalize_label(name) for name in (_TEXTY if texty is None else texty)}
        sensitive_set = {normalize_label(name) for name in (_SENSITIVE if sensitive is None else sensitive)}
        self._behaviors: dict[str, LabelBehavior] = {
            label: LabelBehavior(texty=label in texty_set, sensitive=label in sensitive_set)
            for label in texty_set | sensitive_set
        }

    def behavior(self, label: str) -> LabelBehavior:
        return self._behaviors.get(normalize_label(label), LabelBehavior())

    def is_texty(self, label: str) -> bool:
        return self.behavior(label).texty

    def is_sensitive(self, label: str) -> bool:
        return self.behavior(label).sensitive

    def overlay_color(self, label: str) -> tuple[int, int, int]:
        return WARNING_COLOR if self.is_sensitive(label) else NEUTRAL_COLOR


def build_label_table(texty_extra: str = '', sensitive_extra: str = '') -> LabelTable:
    return LabelTable(
        texty=_TEXTY | parse_label_set(texty_extra),
        sensitive=_SENSITIVE | parse_label_set(sensitive_extra),
    )
