from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from ..schemas.patrimony import PatrimonyOut


class SelectAllState(str, Enum):
    NONE = "none"
    SOME = "some"
    ALL = "all"


@dataclass
class SelectionState:
    """Filter text plus the set of checked record ids.

    ``select all`` works on the filtered view, not on every record.
    """

    filter_text: str = ""
    selected: set[str] = field(default_factory=set)

    def matches(self, record: PatrimonyOut) -> bool:
        needle = self.filter_text.strip().lower()
        return not needle or needle in record.number.lower()

    def filtered(self, records: Iterable[PatrimonyOut]) -> list[PatrimonyOut]:
        return [record for record in records if self.matches(record)]

    def set_filter(self, text: str) -> None:
        self.filter_text = text or ""

    def is_selected(self, item_id: str) -> bool:
        return item_id in self.selected

    def toggle(self, item_id: str) -> None:
        if item_id in self.selected:
            self.selected.discard(item_id)
        else:
            self.selected.add(item_id)

    def discard(self, item_id: str) -> None:
        self.selected.discard(item_id)

    def clear(self) -> None:
        self.selected.clear()

    def prune(self, listed_ids: Iterable[str]) -> None:
        """Keep selection a subset of the ids currently listed."""
        self.selected &= set(listed_ids)

    def select_all_state(self, records: Sequence[PatrimonyOut]) -> SelectAllState:
        visible = {record.id for record in self.filtered(records)}
        chosen = visible & self.selected
        if not visible or not chosen:
            return SelectAllState.NONE
        if chosen == visible:
            return SelectAllState.ALL
        return SelectAllState.SOME

    def toggle_all(self, records: Sequence[PatrimonyOut]) -> None:
        if self.select_all_state(records) is SelectAllState.ALL:
            self.selected.clear()
        else:
            self.selected = {record.id for record in self.filtered(records)}
