import asyncio
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.core.db import install_sqlite_pragmas
from backoffice.gateways.sql import SqlGateway
from backoffice.models import Base, ClassSection
from backoffice.models.academic import YearStatus
from backoffice.schemas.academic import AcademicYearCreate, LevelCreate
from backoffice.schemas.class_schema import ClassSectionCreate
from backoffice.schemas.fee_schema import FeeScheduleCreate


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    install_sqlite_pragmas(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def gateway(db):
    return SqlGateway(db)


@pytest.fixture
def school(gateway, db):
    """
    Two years of a small primary school.

    2024-2025 (current): CP and CE1 have fee schedules; CP-A holds one seat,
    CP-B two, CE1-A thirty. CE2-A belongs to a level with no schedule.
    2025-2026 (planned): only CP has a schedule, with a different tuition.
    """

    async def build():
        y1 = await gateway.create_academic_year(AcademicYearCreate(
            label="2024-2025", start_date=date(2024, 9, 2), end_date=date(2025, 7, 11),
            status=YearStatus.CURRENT,
        ))
        y2 = await gateway.create_academic_year(AcademicYearCreate(
            label="2025-2026", start_date=date(2025, 9, 1), end_date=date(2026, 7, 10),
        ))
        cp = await gateway.create_level(LevelCreate(name="CP", cycle="primaire", order=1))
        ce1 = await gateway.create_level(LevelCreate(name="CE1", cycle="primaire", order=2))
        ce2 = await gateway.create_level(LevelCreate(name="CE2", cycle="primaire", order=3))

        cp_fees = await gateway.create_fee_schedule(FeeScheduleCreate(
            level_id=cp.id, academic_year_id=y1.id,
            tuition_amount=Decimal("250000"), registration_fee=Decimal("50000"), file_fee=Decimal("10000"),
        ))
        ce1_fees = await gateway.create_fee_schedule(FeeScheduleCreate(
            level_id=ce1.id, academic_year_id=y1.id,
            tuition_amount=Decimal("300000"), registration_fee=Decimal("50000"), file_fee=Decimal("10000"),
        ))
        cp_fees_next = await gateway.create_fee_schedule(FeeScheduleCreate(
            level_id=cp.id, academic_year_id=y2.id,
            tuition_amount=Decimal("275000"), registration_fee=Decimal("55000"), file_fee=Decimal("10000"),
        ))

        cp_a = await gateway.create_class_section(ClassSectionCreate(
            name="CP-A", level_id=cp.id, academic_year_id=y1.id, capacity=1,
        ))
        cp_b = await gateway.create_class_section(ClassSectionCreate(
            name="CP-B", level_id=cp.id, academic_year_id=y1.id, capacity=2,
        ))
        ce1_a = await gateway.create_class_section(ClassSectionCreate(
            name="CE1-A", level_id=ce1.id, academic_year_id=y1.id, capacity=30,
        ))
        cp_next = await gateway.create_class_section(ClassSectionCreate(
            name="CP-A 2025", level_id=cp.id, academic_year_id=y2.id, capacity=25,
        ))
        return SimpleNamespace(
            y1=y1, y2=y2, cp=cp, ce1=ce1, ce2=ce2,
            cp_fees=cp_fees, ce1_fees=ce1_fees, cp_fees_next=cp_fees_next,
            cp_a=cp_a, cp_b=cp_b, ce1_a=ce1_a, cp_next=cp_next,
        )

    data = asyncio.run(build())

    # Inserted directly: the gateway refuses classes without a fee schedule
    ce2_a = ClassSection(name="CE2-A", level_id=data.ce2.id, academic_year_id=data.y1.id, capacity=30)
    db.add(ce2_a)
    db.commit()
    data.ce2_a = ce2_a
    return data
