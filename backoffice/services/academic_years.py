# backoffice/services/academic_years.py - Session-active academic year with push notifications
import logging
from typing import Callable, List, Optional

from backoffice.core.exceptions import NoActiveYearError, NotFoundError
from backoffice.gateways.base import SchoolGateway
from backoffice.models.academic import YearStatus
from backoffice.schemas.academic import AcademicYearOut

logger = logging.getLogger(__name__)

YearListener = Callable[[Optional[AcademicYearOut]], None]


def _sort_key(year: AcademicYearOut):
    return (year.start_date, year.id)


class AcademicYearRegistry:
    """
    Holds the known academic years and the one active in this session.

    Dependents subscribe instead of polling. Every change of the active year
    bumps `generation`; a fetch started under an older generation must be
    discarded by its owner (see `is_current`).
    """

    def __init__(self, gateway: SchoolGateway):
        self._gateway = gateway
        self._years: List[AcademicYearOut] = []
        self._active: Optional[AcademicYearOut] = None
        self._generation = 0
        self._listeners: List[YearListener] = []

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def list_years(self) -> List[AcademicYearOut]:
        return sorted(self._years, key=_sort_key)

    def get_active(self) -> Optional[AcademicYearOut]:
        return self._active

    def require_active(self) -> AcademicYearOut:
        if self._active is None:
            raise NoActiveYearError("No active academic year selected")
        return self._active

    def current_year(self) -> Optional[AcademicYearOut]:
        """Year flagged current system-wide; may differ from the active one"""
        return next((year for year in self.list_years() if year.status == YearStatus.CURRENT), None)

    def get_year(self, year_id: int) -> AcademicYearOut:
        year = self._find(year_id)
        if year is None:
            raise NotFoundError(f"Academic year {year_id} not found", id=year_id)
        return year

    def subscribe(self, listener: YearListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_active(self, year_id: int) -> AcademicYearOut:
        self.get_year(year_id)
        persisted = await self._gateway.activate_academic_year(year_id)
        self._years = [persisted if year.id == persisted.id else year.model_copy(update={"is_active": False})
                       for year in self._years]
        self._select(persisted)
        return persisted

    async def refresh(self) -> List[AcademicYearOut]:
        years = await self._gateway.list_academic_years()
        self._years = sorted(years, key=_sort_key)

        previous_id = self._active.id if self._active else None
        selected = self._find(previous_id) if previous_id is not None else None
        if selected is None:
            # Year remembered by activate_academic_year in an earlier session
            selected = next((year for year in self._years if year.is_active), None)
        if selected is None:
            selected = self.current_year()
        if selected is None and self._years:
            selected = self._years[0]

        if (selected.id if selected else None) != previous_id:
            self._select(selected)
        else:
            # Same year, possibly with fresher fields; dependents keep their data
            self._active = selected
        logger.info(f"Loaded {len(self._years)} academic years, active: {selected.label if selected else None}")
        return self.list_years()

    def _find(self, year_id: Optional[int]) -> Optional[AcademicYearOut]:
        return next((year for year in self._years if year.id == year_id), None)

    def _select(self, year: Optional[AcademicYearOut]):
        self._active = year
        self._generation += 1
        logger.info(f"Active academic year is now {year.label if year else None} (generation {self._generation})")
        for listener in list(self._listeners):
            listener(year)
