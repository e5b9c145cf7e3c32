"""Port for evaluating attribute template expressions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@runtime_checkable
class TemplateRenderer(Protocol):
    """Render ``expression`` against ``context``; ``None`` signals a failed evaluation."""

    def render(self, expression: str, context: Mapping[str, object]) -> str | None: ...


__all__ = ["TemplateRenderer"]
