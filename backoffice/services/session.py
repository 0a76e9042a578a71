# backoffice/services/session.py - Wires the engine components for one user session
import logging
from typing import List, Optional

from backoffice.gateways.base import SchoolGateway
from backoffice.schemas.academic import AcademicYearOut
from backoffice.services.academic_years import AcademicYearRegistry
from backoffice.services.enrollment_service import EnrollmentService
from backoffice.services.fee_schedules import FeeScheduleResolver
from backoffice.services.occupancy import ClassOccupancyIndex
from backoffice.services.reference_data import ReferenceDataView

logger = logging.getLogger(__name__)


class BackOfficeSession:
    """
    One session's engine.

    Recomputation runs in a fixed order after every year change:
    registry -> (resolver, occupancy, reference snapshot cleared) -> reload.
    """

    def __init__(self, gateway: SchoolGateway):
        self.gateway = gateway
        self.registry = AcademicYearRegistry(gateway)
        self.fees = FeeScheduleResolver(gateway, self.registry)
        self.occupancy = ClassOccupancyIndex(gateway, self.registry)
        self.reference = ReferenceDataView(self.registry, gateway, self.fees, self.occupancy)
        self.enrollments = EnrollmentService(gateway, self.registry, self.fees, self.occupancy)

    async def start(self) -> Optional[AcademicYearOut]:
        await self.registry.refresh()
        await self.reference.reload()
        active = self.registry.get_active()
        logger.info(f"Session started on academic year {active.label if active else None}")
        return active

    async def refresh(self) -> List[AcademicYearOut]:
        years = await self.registry.refresh()
        await self.reference.reload()
        return years

    async def switch_year(self, year_id: int) -> AcademicYearOut:
        year = await self.registry.set_active(year_id)
        await self.reference.reload()
        return year

    def close(self):
        self.reference.close()
