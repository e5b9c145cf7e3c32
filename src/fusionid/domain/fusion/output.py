"""Output shape of one emitted fusion record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fusionid.domain.model.inputs import Attributes


@dataclass(slots=True, frozen=True, kw_only=True)
class RecordOutput:
    key: str
    attributes: Attributes = field(default_factory=dict["str", "object"])
    disabled: bool = False

    def as_dict(self) -> dict[str, object]:
        return {"key": self.key, "attributes": dict(self.attributes), "disabled": self.disabled}
