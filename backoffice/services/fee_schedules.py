# backoffice/services/fee_schedules.py - Fee lookup per (level, year) and copy-forward
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from backoffice.core.exceptions import (
    DuplicateFeeScheduleError, FeeScheduleMissingError, NotFoundError, ValidationError,
)
from backoffice.gateways.base import SchoolGateway
from backoffice.schemas.class_schema import ClassSectionOut
from backoffice.schemas.fee_schema import CopyForwardResult, FeeScheduleCreate, FeeScheduleOut

logger = logging.getLogger(__name__)


class FeeScheduleResolver:
    """Fee schedules of the loaded year, plus the class -> level map needed by resolve_for_class"""

    def __init__(self, gateway: SchoolGateway, registry=None):
        self._gateway = gateway
        self._registry = registry
        self._schedules: Dict[Tuple[int, int], FeeScheduleOut] = {}
        self._classes: Dict[int, ClassSectionOut] = {}
        self.year_id: Optional[int] = None

    def apply(self, year_id: int, schedules: Iterable[FeeScheduleOut], classes: Iterable[ClassSectionOut]):
        """Replace the snapshot with freshly fetched collections"""
        self.year_id = year_id
        self._schedules = {(s.level_id, s.academic_year_id): s for s in schedules}
        self._classes = {c.id: c for c in classes}

    def clear(self):
        self.year_id = None
        self._schedules = {}
        self._classes = {}

    async def load(self, year_id: int) -> bool:
        """Fetch schedules and classes for a year; False when the active year moved meanwhile"""
        token = self._registry.generation if self._registry else None
        schedules = await self._gateway.list_fee_schedules(year_id=year_id)
        classes = await self._gateway.list_class_sections(year_id=year_id)
        if self._registry and not self._registry.is_current(token):
            logger.warning(f"Discarding fee schedules fetched for year {year_id}: active year changed")
            return False
        self.apply(year_id, schedules, classes)
        return True

    def resolve(self, level_id: int, year_id: int) -> Optional[FeeScheduleOut]:
        return self._schedules.get((level_id, year_id))

    def resolve_for_class(self, class_section_id: int) -> Optional[FeeScheduleOut]:
        section = self._classes.get(class_section_id)
        if section is None:
            raise NotFoundError(f"Class section {class_section_id} not found", id=class_section_id)
        return self.resolve(section.level_id, section.academic_year_id)

    def schedules(self) -> List[FeeScheduleOut]:
        return sorted(self._schedules.values(), key=lambda s: (s.academic_year_id, s.level_id))

    async def fetch(self, level_id: int, year_id: int) -> Optional[FeeScheduleOut]:
        """Ask the gateway directly, bypassing the snapshot"""
        schedule = self.resolve(level_id, year_id)
        if schedule is None:
            schedule = await self._gateway.get_fee_schedule(level_id, year_id)
            if schedule is not None and year_id == self.year_id:
                self._schedules[(level_id, year_id)] = schedule
        return schedule

    async def require(self, level_id: int, year_id: int) -> FeeScheduleOut:
        schedule = await self.fetch(level_id, year_id)
        if schedule is None:
            raise FeeScheduleMissingError(
                f"No fee schedule for level {level_id} in academic year {year_id}",
                level_id=level_id,
                academic_year_id=year_id,
            )
        return schedule

    async def copy_forward(self, from_year_id: int, to_year_id: int) -> CopyForwardResult:
        """
        Copy every schedule of from_year_id into to_year_id.

        Levels already covered in the target year are skipped and never
        overwritten, so running it again copies nothing.
        """
        if from_year_id == to_year_id:
            raise ValidationError("Source and target years must differ")
        known = {year.id for year in await self._gateway.list_academic_years()}
        for year_id in (from_year_id, to_year_id):
            if year_id not in known:
                raise NotFoundError(f"Academic year {year_id} not found", id=year_id)

        source = await self._gateway.list_fee_schedules(year_id=from_year_id)
        covered = {s.level_id for s in await self._gateway.list_fee_schedules(year_id=to_year_id)}

        result = CopyForwardResult()
        for schedule in sorted(source, key=lambda s: s.level_id):
            if schedule.level_id in covered:
                result.skipped += 1
                continue
            try:
                created = await self._gateway.create_fee_schedule(
                    FeeScheduleCreate(
                        level_id=schedule.level_id,
                        academic_year_id=to_year_id,
                        tuition_amount=schedule.tuition_amount,
                        registration_fee=schedule.registration_fee,
                        file_fee=schedule.file_fee,
                    )
                )
            except DuplicateFeeScheduleError:
                # Created concurrently by someone else; theirs stays
                logger.info(f"Fee schedule for level {schedule.level_id} appeared in year {to_year_id}, skipping")
                result.skipped += 1
                continue
            result.copied += 1
            covered.add(schedule.level_id)
            if to_year_id == self.year_id:
                self._schedules[(created.level_id, created.academic_year_id)] = created

        logger.info(
            f"Copied fee schedules from year {from_year_id} to {to_year_id}: "
            f"{result.copied} copied, {result.skipped} skipped"
        )
        return result
