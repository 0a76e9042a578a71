# backoffice/services/reference_data.py - Year-filtered projections consumed by enrollment forms
import logging
from typing import Dict, List, Optional

from backoffice.core.exceptions import GatewayError, NotFoundError
from backoffice.gateways.base import SchoolGateway
from backoffice.models.enrollment import ACTIVE_STATUSES
from backoffice.schemas.academic import AcademicYearOut, LevelOut
from backoffice.schemas.class_schema import ClassSectionDetail, ClassSectionOut
from backoffice.services.academic_years import AcademicYearRegistry
from backoffice.services.fee_schedules import FeeScheduleResolver
from backoffice.services.occupancy import ClassOccupancyIndex

logger = logging.getLogger(__name__)


class ReferenceDataView:
    """
    Read-only projections over the registry and the fetched collections.

    Nothing here is cached between reads; each method derives its answer
    from the current snapshot. Switching the active year empties the
    snapshot until `reload` has fetched the new year's data.
    """

    def __init__(
        self,
        registry: AcademicYearRegistry,
        gateway: SchoolGateway,
        resolver: FeeScheduleResolver,
        occupancy: ClassOccupancyIndex,
    ):
        self._registry = registry
        self._gateway = gateway
        self._resolver = resolver
        self._occupancy = occupancy
        self._levels: Dict[int, LevelOut] = {}
        self._classes: List[ClassSectionOut] = []
        self._year_id: Optional[int] = None
        self._unsubscribe = registry.subscribe(self._on_active_year_changed)

    def close(self):
        self._unsubscribe()

    def _on_active_year_changed(self, year: Optional[AcademicYearOut]):
        logger.debug(f"Active year changed to {year.id if year else None}; dropping year snapshot")
        self._classes = []
        self._year_id = None
        self._resolver.clear()
        self._occupancy.clear()

    async def reload(self) -> bool:
        """
        Fetch levels, classes, fee schedules and occupancy for the active year.

        Returns False when nothing was applied: either there is no active
        year, or the active year changed before the fetch completed.
        """
        token = self._registry.generation
        active = self._registry.get_active()

        levels = await self._gateway.list_levels()
        if active is None:
            if self._registry.is_current(token):
                self._levels = {level.id: level for level in levels}
            return False

        classes = await self._gateway.list_class_sections(year_id=active.id)
        schedules = await self._gateway.list_fee_schedules(year_id=active.id)
        try:
            enrollments = await self._gateway.list_enrollments(year_id=active.id, statuses=ACTIVE_STATUSES)
        except GatewayError as e:
            logger.warning(f"Could not load enrollments for year {active.id}: {e}")
            enrollments = None

        if not self._registry.is_current(token):
            logger.warning(f"Discarding reference data fetched for year {active.label}: active year changed")
            return False

        self._levels = {level.id: level for level in levels}
        self._classes = classes
        self._year_id = active.id
        self._resolver.apply(active.id, schedules, classes)
        if enrollments is None:
            self._occupancy.mark_unavailable(active.id, classes)
        else:
            self._occupancy.apply(active.id, classes, enrollments)
        logger.info(f"Reference data loaded for {active.label}: {len(classes)} classes, {len(schedules)} fee schedules")
        return True

    # ---- helpers ----

    def _active_year_id(self) -> Optional[int]:
        active = self._registry.get_active()
        if active is None or active.id != self._year_id:
            return None
        return active.id

    def _has_fees(self, section: ClassSectionOut) -> bool:
        return self._resolver.resolve(section.level_id, section.academic_year_id) is not None

    def _level_order(self, section: ClassSectionOut):
        level = self._levels.get(section.level_id)
        return (level.order if level else 0, section.name, section.id)

    # ---- projections ----

    def levels(self) -> List[LevelOut]:
        return sorted(self._levels.values(), key=lambda level: (level.order, level.id))

    def level(self, level_id: int) -> LevelOut:
        level = self._levels.get(level_id)
        if level is None:
            raise NotFoundError(f"Level {level_id} not found", id=level_id)
        return level

    def cycles(self) -> List[str]:
        seen: List[str] = []
        for level in self.levels():
            if level.cycle not in seen:
                seen.append(level.cycle)
        return seen

    def classes_for_active_year(self) -> List[ClassSectionOut]:
        """Classes of the active year that have a fee schedule"""
        year_id = self._active_year_id()
        if year_id is None:
            return []
        sections = [c for c in self._classes if c.academic_year_id == year_id and self._has_fees(c)]
        return sorted(sections, key=self._level_order)

    def levels_with_fee_coverage(self, year_id: int) -> List[LevelOut]:
        return [level for level in self.levels() if self._resolver.resolve(level.id, year_id) is not None]

    def eligible_classes(self, excluding_enrollment_id: Optional[int] = None) -> List[ClassSectionOut]:
        """Selectable classes of the active year with fee coverage"""
        year_id = self._active_year_id()
        if year_id is None:
            return []
        sections = self._occupancy.eligible_classes(year_id, excluding_enrollment_id)
        return sorted([c for c in sections if self._has_fees(c)], key=self._level_order)

    def levels_with_eligible_classes(self) -> List[LevelOut]:
        level_ids = {section.level_id for section in self.eligible_classes()}
        return [level for level in self.levels() if level.id in level_ids]

    def classes_with_details(self) -> List[ClassSectionDetail]:
        """Every class of the active year, full ones included, with display details"""
        year_id = self._active_year_id()
        if year_id is None:
            return []
        year = self._registry.get_year(year_id)
        available = self._occupancy.is_available(year_id)

        details = []
        for section in sorted(self._classes, key=self._level_order):
            level = self._levels.get(section.level_id)
            has_fees = self._has_fees(section)
            details.append(ClassSectionDetail(
                **section.model_dump(),
                level_name=level.name if level else "",
                cycle=level.cycle if level else "",
                level_order=level.order if level else 0,
                year_label=year.label,
                enrolled_count=self._occupancy.active_count(section.id) if available else 0,
                remaining_seats=self._occupancy.remaining_seats(section.id),
                has_fee_schedule=has_fees,
                selectable=has_fees and self._occupancy.is_selectable(section.id),
            ))
        return details

    def previous_year(self, active_year: Optional[AcademicYearOut] = None) -> Optional[AcademicYearOut]:
        """Year with the latest start_date strictly before the active one"""
        active_year = active_year or self._registry.get_active()
        if active_year is None:
            return None
        earlier = [y for y in self._registry.list_years() if y.start_date < active_year.start_date]
        return max(earlier, key=lambda y: y.start_date) if earlier else None
