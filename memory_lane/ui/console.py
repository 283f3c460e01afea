"""Plain-text overview of the entry catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from ..services.entries import EntryRecord, EntryRepository


@dataclass
class ConsoleSection:
    title: str
    entries: Iterable[str]


class ConsoleUI:
    """Minimal console UI that lists entries grouped by status."""

    def __init__(self, repository: EntryRepository) -> None:
        self._repository = repository

    def run(self) -> None:
        print("Memory Lane – Console Overview")
        print("=" * 40)
        for section in self._build_sections():
            print(section.title)
            print("-" * len(section.title))
            has_entries = False
            for entry in section.entries:
                has_entries = True
                print(entry)
            if not has_entries:
                print("(empty)")
            print()

    def _build_sections(self) -> Iterable[ConsoleSection]:
        yield ConsoleSection("Active", self._format(self._repository.list_active()))
        yield ConsoleSection("Staging", self._format(self._repository.list_staging()))
        yield ConsoleSection("Disabled", self._format(self._repository.list_disabled()))

    @staticmethod
    def _format(records: List[EntryRecord]) -> Iterable[str]:
        for record in records:
            prefix = f"  {record.position:>3}. " if record.position is not None else "  -    "
            label = record.title or record.remote_path
            suffix = " (narrated)" if record.has_narration else ""
            yield f"{prefix}{label}{suffix}"


__all__ = ["ConsoleUI"]
