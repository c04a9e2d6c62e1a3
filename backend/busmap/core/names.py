"""Stop-name normalization shared by the registry, resolver and schedule parser."""

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_ORDINAL_PREFIX = re.compile(r"^\s*\d+\.?\s*")

# Normalized labels the feed uses when it has no stop to report
PLACEHOLDER_NAMES = frozenset({"", "na", "unknown", "none", "null"})


def normalize_name(value: str | None) -> str:
    """Lower-case, strip diacritics and punctuation, collapse whitespace.

    'Røde Etagehuse ' -> 'rde etagehuse', 'Nuuk  Center/Busstation' -> 'nuuk centerbusstation'
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", _NON_ALNUM.sub("", stripped)).strip()


def compact_key(value: str | None) -> str:
    """Normalized name with all spaces removed, e.g. 'Nuuk Center' -> 'nuukcenter'."""
    return normalize_name(value).replace(" ", "")


def is_placeholder(value: str | None) -> bool:
    return normalize_name(value) in PLACEHOLDER_NAMES


def strip_ordinal_prefix(label: str) -> str:
    """'3. Nuuk Center' -> 'Nuuk Center'."""
    return _ORDINAL_PREFIX.sub("", label).strip()
