# backoffice/gateways/http.py - Gateway speaking to the back-office HTTP API
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from backoffice.core.config import settings
from backoffice.core.exceptions import GatewayError, error_from_payload
from backoffice.models.enrollment import EnrollmentStatus
from backoffice.schemas.academic import AcademicYearCreate, AcademicYearOut, LevelCreate, LevelOut
from backoffice.schemas.class_schema import ClassSectionCreate, ClassSectionOut
from backoffice.schemas.fee_schema import FeeScheduleCreate, FeeScheduleOut
from backoffice.schemas.enrollment import EnrollmentCreate, EnrollmentOut, EnrollmentUpdate
from backoffice.schemas.payment import PaymentCreate, PaymentOut, StudentBalance

logger = logging.getLogger(__name__)


class ApiGateway:
    """
    SchoolGateway implementation over httpx.

    Error responses carry {"detail", "code"}; the code is mapped back to the
    matching BackOfficeError subclass so callers see the same exceptions as
    with SqlGateway. Transport failures become GatewayError. Nothing is retried.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        token = token if token is not None else settings.API_TOKEN

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.API_TIMEOUT_SECONDS,
            transport=transport,
        )
        logger.info(f"ApiGateway initialized with base URL: {self.base_url}")

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            response = await self._client.request(method, path, params=params or None, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise GatewayError(f"Could not reach the back-office API: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            error = error_from_payload(response.status_code, payload if isinstance(payload, dict) else None)
            logger.warning(f"{method} {path} returned {response.status_code}: {error.code}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"Invalid JSON from {method} {path}") from e

    # Academic years

    async def list_academic_years(self) -> List[AcademicYearOut]:
        data = await self._request("GET", "/api/academic-years")
        return [AcademicYearOut.model_validate(item) for item in data]

    async def create_academic_year(self, data: AcademicYearCreate) -> AcademicYearOut:
        created = await self._request("POST", "/api/academic-years", json=data.model_dump(mode="json"))
        return AcademicYearOut.model_validate(created)

    async def activate_academic_year(self, year_id: int) -> AcademicYearOut:
        return AcademicYearOut.model_validate(
            await self._request("PATCH", f"/api/academic-years/{year_id}/activate")
        )

    async def set_current_year(self, year_id: int) -> AcademicYearOut:
        return AcademicYearOut.model_validate(
            await self._request("PATCH", f"/api/academic-years/{year_id}/set-current")
        )

    async def close_year(self, year_id: int) -> AcademicYearOut:
        return AcademicYearOut.model_validate(
            await self._request("PATCH", f"/api/academic-years/{year_id}/close")
        )

    async def archive_year(self, year_id: int) -> AcademicYearOut:
        return AcademicYearOut.model_validate(
            await self._request("PATCH", f"/api/academic-years/{year_id}/archive")
        )

    # Levels and classes

    async def list_levels(self) -> List[LevelOut]:
        return [LevelOut.model_validate(item) for item in await self._request("GET", "/api/levels")]

    async def create_level(self, data: LevelCreate) -> LevelOut:
        return LevelOut.model_validate(await self._request("POST", "/api/levels", json=data.model_dump(mode="json")))

    async def list_class_sections(self, year_id: Optional[int] = None) -> List[ClassSectionOut]:
        data = await self._request("GET", "/api/class-sections", params={"year_id": year_id})
        return [ClassSectionOut.model_validate(item) for item in data]

    async def get_class_section(self, class_section_id: int) -> ClassSectionOut:
        return ClassSectionOut.model_validate(await self._request("GET", f"/api/class-sections/{class_section_id}"))

    async def create_class_section(self, data: ClassSectionCreate) -> ClassSectionOut:
        created = await self._request("POST", "/api/class-sections", json=data.model_dump(mode="json"))
        return ClassSectionOut.model_validate(created)

    # Fee schedules

    async def get_fee_schedule(self, level_id: int, year_id: int) -> Optional[FeeScheduleOut]:
        schedules = await self.list_fee_schedules(year_id=year_id, level_id=level_id)
        return schedules[0] if schedules else None

    async def list_fee_schedules(
        self, year_id: Optional[int] = None, level_id: Optional[int] = None
    ) -> List[FeeScheduleOut]:
        data = await self._request("GET", "/api/fee-schedules", params={"year_id": year_id, "level_id": level_id})
        return [FeeScheduleOut.model_validate(item) for item in data]

    async def create_fee_schedule(self, data: FeeScheduleCreate) -> FeeScheduleOut:
        created = await self._request("POST", "/api/fee-schedules", json=data.model_dump(mode="json"))
        return FeeScheduleOut.model_validate(created)

    # Enrollments and payments

    async def list_enrollments(
        self,
        year_id: Optional[int] = None,
        class_section_id: Optional[int] = None,
        statuses: Optional[Iterable[EnrollmentStatus]] = None,
        student_id: Optional[int] = None,
    ) -> List[EnrollmentOut]:
        params: Dict[str, Any] = {
            "year_id": year_id,
            "class_section_id": class_section_id,
            "student_id": student_id,
        }
        if statuses is not None:
            params["status"] = sorted(EnrollmentStatus(s).value for s in statuses)
        data = await self._request("GET", "/api/enrollments", params=params)
        return [EnrollmentOut.model_validate(item) for item in data]

    async def get_enrollment(self, enrollment_id: int) -> EnrollmentOut:
        return EnrollmentOut.model_validate(await self._request("GET", f"/api/enrollments/{enrollment_id}"))

    async def create_enrollment(self, data: EnrollmentCreate) -> EnrollmentOut:
        created = await self._request("POST", "/api/enrollments", json=data.model_dump(mode="json"))
        return EnrollmentOut.model_validate(created)

    async def update_enrollment(self, enrollment_id: int, data: EnrollmentUpdate) -> EnrollmentOut:
        updated = await self._request(
            "PUT",
            f"/api/enrollments/{enrollment_id}",
            json=data.model_dump(mode="json", exclude_none=True),
        )
        return EnrollmentOut.model_validate(updated)

    async def list_payments(self, enrollment_id: int) -> List[PaymentOut]:
        data = await self._request("GET", f"/api/enrollments/{enrollment_id}/payments")
        return [PaymentOut.model_validate(item) for item in data]

    async def record_payment(self, enrollment_id: int, data: PaymentCreate) -> PaymentOut:
        created = await self._request(
            "POST", f"/api/enrollments/{enrollment_id}/payments", json=data.model_dump(mode="json")
        )
        return PaymentOut.model_validate(created)

    async def get_student_balance(self, student_id: int, year_id: int) -> StudentBalance:
        data = await self._request("GET", f"/api/students/{student_id}/balance", params={"year_id": year_id})
        return StudentBalance.model_validate(data)
