"""
License plate normalization for tracker/vehicle matching.

- Fold Arabic-Indic digits to ASCII and Arabic plate letters to Latin.
- Upper-case, collapse whitespace/punctuation, drop everything else.
- Produce a compact comparison value plus the separator-delimited tokens.

Never raises: junk input normalizes to an empty value so the caller can
score it as "no match" and move on.
"""

import re
import unicodedata
from dataclasses import dataclass

# Arabic-Indic and Eastern Arabic-Indic (Persian) digits
_DIGITS = {chr(0x0660 + i): str(i) for i in range(10)}
_DIGITS.update({chr(0x06F0 + i): str(i) for i in range(10)})

# Saudi plate letter convention, plus the variants seen in feed data
_ARABIC_LETTERS = {
    "ا": "A",
    "أ": "A",
    "إ": "A",
    "آ": "A",
    "ب": "B",
    "ح": "J",
    "ج": "J",
    "د": "D",
    "ر": "R",
    "س": "S",
    "ص": "X",
    "ط": "T",
    "ت": "T",
    "ع": "E",
    "ق": "G",
    "ك": "K",
    "ل": "L",
    "م": "Z",
    "ن": "N",
    "ه": "H",
    "ة": "H",
    "و": "U",
    "ؤ": "U",
    "ى": "V",
    "ي": "V",
    "ئ": "V",
}

_TRANSLATION = str.maketrans({**_DIGITS, **_ARABIC_LETTERS})

_SEPARATORS = re.compile(r"[\s\-_.,/\\|:;·]+")
_DISALLOWED = re.compile(r"[^A-Z0-9 ]")


@dataclass(frozen=True)
class NormalizedPlate:
    value: str
    source_plate: str
    tokens: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.value

    @property
    def digits(self) -> str:
        return "".join(ch for ch in self.value if ch.isdigit())


def normalize_plate(raw) -> NormalizedPlate:
    """
    Canonicalize a raw plate string.

    "أ ب ج-123" -> value "ABJ123", tokens ("A", "B", "J", "123")
    "  abj 123 " -> value "ABJ123", tokens ("ABJ", "123")
    """
    if raw is None:
        source = ""
    elif isinstance(raw, str):
        source = raw
    else:
        source = str(raw)

    s = unicodedata.normalize("NFKC", source).strip()
    if not s:
        return NormalizedPlate(value="", source_plate=source)

    s = s.translate(_TRANSLATION).upper()
    s = _SEPARATORS.sub(" ", s)
    s = _DISALLOWED.sub("", s)
    tokens = tuple(s.split())
    return NormalizedPlate(value="".join(tokens), source_plate=source, tokens=tokens)


def strip_region_tokens(plate: NormalizedPlate, region_tokens) -> str:
    """
    Compact value with leading/trailing regional tokens removed.

    Only whole tokens are stripped: "KSA ABJ 123" -> "ABJ123", but
    "SAB123" keeps its leading "SA".
    """
    regions = {t.upper() for t in region_tokens}
    tokens = list(plate.tokens)
    while tokens and tokens[0] in regions:
        tokens.pop(0)
    while tokens and tokens[-1] in regions:
        tokens.pop()
    return "".join(tokens)
