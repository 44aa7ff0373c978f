from __future__ import annotations

from collections.abc import Iterable
import logging

from timegrid.schemas.catalog import WeeklySlot

logger = logging.getLogger(__name__)

DEFAULT_DAY_ORDER = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY")


def _time_sort_key(start_time: str | None, discovered_at: int) -> tuple[bool, str, int]:
    # Lexicographic on purpose: only chronological for zero-padded "HH:MM" values.
    return (start_time is None, start_time or "", discovered_at)


class SlotCatalog:
    """The weekly grid every subclass timetable conforms to.

    Loaded once per session from the periods catalog; one WeeklySlot per
    (day, period name) pair.
    """

    def __init__(self, *, day_order: Iterable[str] | None = None) -> None:
        self._day_order = [day.upper() for day in (day_order or DEFAULT_DAY_ORDER)]
        self._slots: tuple[WeeklySlot, ...] = ()
        self._by_key: dict[tuple[str, str], WeeklySlot] = {}
        self._by_id: dict[str, WeeklySlot] = {}

    def load(self, raw_slots: Iterable[WeeklySlot | dict]) -> None:
        slots: list[WeeklySlot] = []
        by_key: dict[tuple[str, str], WeeklySlot] = {}
        by_id: dict[str, WeeklySlot] = {}
        for raw in raw_slots:
            slot = raw if isinstance(raw, WeeklySlot) else WeeklySlot.model_validate(raw)
            if slot.key in by_key:
                logger.warning(
                    "Duplicate weekly slot %s/%s (id %s) ignored; keeping id %s",
                    slot.day_of_week,
                    slot.name,
                    slot.id,
                    by_key[slot.key].id,
                )
                continue
            slots.append(slot)
            by_key[slot.key] = slot
            by_id.setdefault(slot.id, slot)
        self._slots = tuple(slots)
        self._by_key = by_key
        self._by_id = by_id
        logger.debug("Loaded %d weekly slots", len(slots))

    @property
    def slots(self) -> tuple[WeeklySlot, ...]:
        return self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def unique_period_names(self) -> list[str]:
        representatives: dict[str, WeeklySlot] = {}
        for slot in self._slots:
            representatives.setdefault(slot.name, slot)
        ordered = sorted(
            enumerate(representatives.values()),
            key=lambda item: _time_sort_key(item[1].start_time, item[0]),
        )
        return [slot.name for _, slot in ordered]

    def weekdays(self) -> list[str]:
        discovered = list(dict.fromkeys(slot.day_of_week for slot in self._slots))
        return sorted(discovered, key=self._day_rank)

    def _day_rank(self, day: str) -> int:
        normalized = day.upper()
        if normalized in self._day_order:
            return self._day_order.index(normalized)
        # Unknown days go after the configured week; sorted() keeps discovery order among them.
        return len(self._day_order)

    def definition_for(self, day: str, period_name: str) -> WeeklySlot | None:
        return self._by_key.get((day, period_name))

    def slot_by_id(self, slot_id: str) -> WeeklySlot | None:
        return self._by_id.get(slot_id)

    def is_break(self, day: str, period_name: str) -> bool:
        definition = self.definition_for(day, period_name)
        return bool(definition and definition.is_break)

    def slots_for_day(self, day: str) -> list[WeeklySlot]:
        day_slots = [slot for slot in self._slots if slot.day_of_week == day]
        ordered = sorted(enumerate(day_slots), key=lambda item: _time_sort_key(item[1].start_time, item[0]))
        return [slot for _, slot in ordered]

    def grid(self) -> list[WeeklySlot]:
        ordered: list[WeeklySlot] = []
        for day in self.weekdays():
            ordered.extend(self.slots_for_day(day))
        return ordered
