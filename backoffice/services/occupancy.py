# backoffice/services/occupancy.py - Seats taken per class section, per academic year
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from backoffice.core.exceptions import (
    CapacityExceededError, GatewayError, NotFoundError, OccupancyUnavailableError,
)
from backoffice.gateways.base import SchoolGateway
from backoffice.models.enrollment import ACTIVE_STATUSES
from backoffice.schemas.class_schema import ClassSectionOut
from backoffice.schemas.enrollment import EnrollmentOut

logger = logging.getLogger(__name__)


@dataclass
class YearOccupancy:
    """Snapshot for one year; available=False means occupancy could not be loaded"""
    year_id: int
    classes: Dict[int, ClassSectionOut] = field(default_factory=dict)
    counts: Counter = field(default_factory=Counter)
    holders: Dict[int, int] = field(default_factory=dict)  # enrollment id -> class id
    available: bool = True


class ClassOccupancyIndex:
    """
    A class is occupied once its active (enrolled or renewed) enrollments
    fill its capacity. When occupancy cannot be loaded the index fails
    closed: every class counts as occupied and nothing is selectable.
    """

    def __init__(self, gateway: SchoolGateway, registry=None):
        self._gateway = gateway
        self._registry = registry
        self._years: Dict[int, YearOccupancy] = {}

    # ---- snapshot management ----

    def apply(self, year_id: int, classes: Iterable[ClassSectionOut], enrollments: Iterable[EnrollmentOut]):
        snapshot = YearOccupancy(year_id=year_id, classes={c.id: c for c in classes if c.academic_year_id == year_id})
        for enrollment in enrollments:
            if enrollment.academic_year_id != year_id or enrollment.status not in ACTIVE_STATUSES:
                continue
            snapshot.counts[enrollment.class_section_id] += 1
            snapshot.holders[enrollment.id] = enrollment.class_section_id
        self._years[year_id] = snapshot

    def mark_unavailable(self, year_id: int, classes: Iterable[ClassSectionOut] = ()):
        logger.warning(f"Occupancy for year {year_id} unavailable; treating every class as occupied")
        self._years[year_id] = YearOccupancy(
            year_id=year_id,
            classes={c.id: c for c in classes if c.academic_year_id == year_id},
            available=False,
        )

    def clear(self):
        self._years = {}

    def is_loaded(self, year_id: int) -> bool:
        return year_id in self._years

    def is_available(self, year_id: int) -> bool:
        snapshot = self._years.get(year_id)
        return snapshot is not None and snapshot.available

    async def load(self, year_id: int) -> bool:
        """
        Fetch classes and active enrollments of a year.

        Returns False when the result was discarded because the active year
        changed while fetching. An enrollment fetch failure leaves the year
        in the fail-closed state.
        """
        token = self._registry.generation if self._registry else None
        classes = await self._gateway.list_class_sections(year_id=year_id)
        try:
            enrollments = await self._gateway.list_enrollments(year_id=year_id, statuses=ACTIVE_STATUSES)
        except GatewayError as e:
            logger.warning(f"Could not load enrollments for year {year_id}: {e}")
            enrollments = None

        if self._registry and not self._registry.is_current(token):
            logger.warning(f"Discarding occupancy fetched for year {year_id}: active year changed")
            return False
        if enrollments is None:
            self.mark_unavailable(year_id, classes)
        else:
            self.apply(year_id, classes, enrollments)
        return True

    # ---- queries ----

    def _snapshot(self, year_id: int) -> Optional[YearOccupancy]:
        return self._years.get(year_id)

    def _snapshot_for_class(self, class_section_id: int) -> YearOccupancy:
        for snapshot in self._years.values():
            if class_section_id in snapshot.classes:
                return snapshot
        raise NotFoundError(f"Class section {class_section_id} not found", id=class_section_id)

    def occupied_class_ids(self, year_id: int) -> Set[int]:
        snapshot = self._snapshot(year_id)
        if snapshot is None:
            raise OccupancyUnavailableError(
                f"Occupancy for academic year {year_id} is not loaded", academic_year_id=year_id
            )
        if not snapshot.available:
            return set(snapshot.classes)
        return {
            class_id for class_id, section in snapshot.classes.items()
            if snapshot.counts[class_id] >= section.capacity
        }

    def eligible_classes(self, year_id: int, excluding_enrollment_id: Optional[int] = None) -> List[ClassSectionOut]:
        """Unoccupied classes of the year, plus the class held by the enrollment being edited"""
        snapshot = self._snapshot(year_id)
        if snapshot is None or not snapshot.available:
            return []
        occupied = self.occupied_class_ids(year_id)
        held = snapshot.holders.get(excluding_enrollment_id) if excluding_enrollment_id is not None else None
        sections = [
            section for class_id, section in snapshot.classes.items()
            if class_id not in occupied or class_id == held
        ]
        return sorted(sections, key=lambda s: (s.name, s.id))

    def active_count(self, class_section_id: int) -> int:
        return self._snapshot_for_class(class_section_id).counts[class_section_id]

    def remaining_seats(self, class_section_id: int) -> int:
        snapshot = self._snapshot_for_class(class_section_id)
        if not snapshot.available:
            return 0
        return snapshot.classes[class_section_id].capacity - snapshot.counts[class_section_id]

    def is_selectable(self, class_section_id: int, held_by: Optional[int] = None) -> bool:
        snapshot = self._snapshot_for_class(class_section_id)
        if not snapshot.available:
            return False
        if held_by is not None and snapshot.holders.get(held_by) == class_section_id:
            return True
        return self.remaining_seats(class_section_id) > 0

    def require_selectable(self, year_id: int, class_section_id: int, held_by: Optional[int] = None):
        snapshot = self._snapshot(year_id)
        if snapshot is None or not snapshot.available:
            raise OccupancyUnavailableError(
                f"Occupancy for academic year {year_id} is unavailable; reload before selecting a class",
                academic_year_id=year_id,
            )
        section = snapshot.classes.get(class_section_id)
        if section is None:
            raise NotFoundError(
                f"Class section {class_section_id} not found in academic year {year_id}", id=class_section_id
            )
        if not self.is_selectable(class_section_id, held_by):
            raise CapacityExceededError(
                f"Class {section.name} is full ({snapshot.counts[class_section_id]}/{section.capacity})",
                class_section_id=class_section_id,
            )
