from __future__ import annotations

from dataclasses import dataclass, replace


def advance(cursor: int, n: int) -> int:
    if n <= 0:
        raise ValueError("cannot advance over an empty schedule")
    return (cursor + 1) % n


@dataclass(frozen=True)
class ScheduleState:
    order: tuple[str, ...]
    cursor: int = 0

    def __post_init__(self):
        if not self.order:
            raise ValueError("schedule needs at least one pool")
        if not 0 <= self.cursor < len(self.order):
            raise ValueError(f"cursor {self.cursor} outside [0, {len(self.order)})")

    @property
    def current(self) -> str:
        return self.order[self.cursor]

    def advanced(self) -> ScheduleState:
        return replace(self, cursor=advance(self.cursor, len(self.order)))
