import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backoffice.core.db import DatabaseManager
from backoffice.models import Base, Level


@pytest.fixture
def manager():
    manager = DatabaseManager("sqlite://")
    manager.initialize()
    Base.metadata.create_all(bind=manager.engine)
    yield manager
    manager.close()


def test_transaction_commits_on_success(manager):
    with manager.transaction() as session:
        session.add(Level(name="CP", cycle="primaire", order=1))

    with manager.transaction() as session:
        names = session.execute(select(Level.name)).scalars().all()
    assert names == ["CP"]


def test_transaction_rolls_back_on_error(manager):
    with manager.transaction() as session:
        session.add(Level(name="CP", cycle="primaire", order=1))

    with pytest.raises(IntegrityError):
        with manager.transaction() as session:
            session.add(Level(name="CE1", cycle="primaire", order=2))
            session.add(Level(name="CP", cycle="primaire", order=3))

    with manager.transaction() as session:
        assert session.execute(select(Level.name)).scalars().all() == ["CP"]


def test_health_check_reports_local_sqlite(manager):
    health = manager.health_check()
    assert health["status"] == "healthy"
    assert health["database_url"] == "local"
