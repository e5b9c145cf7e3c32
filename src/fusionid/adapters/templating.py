"""Default template renderer for attribute expressions.

Expressions use ``string.Template`` placeholders extended with dotted paths:
``$firstname.$lastname`` reads two top-level values, ``${identity.email}``
walks into nested mappings and ``${accounts.0.mail}`` indexes sequences.
A placeholder that resolves to nothing makes the whole render fail.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from string import Template
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)


class _DottedTemplate(Template):
    # Only the braced form may contain dots so that ``$first.$last`` keeps its separator.
    braceidpattern = r"(?a:[_a-z][_a-z0-9]*(?:\.[_a-z0-9]+)*)"


class _MissingValueError(KeyError):
    pass


class _PathLookup(Mapping[str, object]):
    def __init__(self, context: Mapping[str, object]) -> None:
        self._context = context

    def __getitem__(self, key: str) -> object:
        value = _resolve(self._context, key)
        if value is None:
            raise _MissingValueError(key)
        return value

    def __iter__(self) -> Iterator[str]:
        return iter(self._context)

    def __len__(self) -> int:
        return len(self._context)


def _resolve(context: Mapping[str, object], path: str) -> object:
    current: object = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


class StringTemplateRenderer:
    """``TemplateRenderer`` backed by :class:`string.Template`."""

    def render(self, expression: str, context: Mapping[str, object]) -> str | None:
        try:
            return _DottedTemplate(expression).substitute(_PathLookup(context))
        except KeyError as exc:
            log.debug("Template %r references a missing value: %s", expression, exc)
            return None
        except ValueError:
            log.warning("Template %r is malformed", expression)
            return None


__all__ = ["StringTemplateRenderer"]
