"""String transforms applied to rendered attribute values."""

from __future__ import annotations

import logging
import re
import unicodedata

from fusionid.domain.model.enums import CaseStyle

log = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")
_APOSTROPHES = re.compile(r"['`]")


def switch_case(value: str, case: CaseStyle) -> str:
    if case is CaseStyle.LOWER:
        return value.lower()
    if case is CaseStyle.UPPER:
        return value.upper()
    if case is CaseStyle.CAPITALIZE:
        return " ".join(word[:1].upper() + word[1:] for word in value.split(" "))
    return value


def remove_spaces(value: str) -> str:
    return _WHITESPACE.sub("", value)


def normalize(value: str) -> str:
    """Transliterate to plain ASCII and drop apostrophes.

    Compatibility decomposition splits accented letters into base letter plus
    combining marks, which are then discarded.
    """

    decomposed = unicodedata.normalize("NFKD", value)
    ascii_only = "".join(char for char in decomposed if not unicodedata.combining(char))
    ascii_only = ascii_only.encode("ascii", "ignore").decode("ascii")
    return _APOSTROPHES.sub("", ascii_only)


def pad_number(number: int, digits: int) -> str:
    return str(number).zfill(digits)


def truncate(value: str, max_length: int, *, counter: str = "") -> str:
    """Cut ``value`` to ``max_length`` keeping a trailing ``counter`` intact."""

    if len(value) <= max_length:
        return value
    if not counter or not value.endswith(counter):
        return value[:max_length]
    available = max_length - len(counter)
    if available < 0:
        log.error(
            "Maximum length %s is less than counter length %s; truncating counter",
            max_length,
            len(counter),
        )
        return value[:max_length]
    return value[: len(value) - len(counter)][:available] + counter
