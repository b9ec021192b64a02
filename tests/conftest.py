"""Shared fixtures: a temporary database with one seeded family."""

from datetime import datetime, timedelta, timezone

import pytest

from kinmerge.config import DedupeConfig
from kinmerge.service import DedupeService
from kinmerge.storage.database import FamilyDatabase


class TickingClock:
    """Clock that moves forward one second every time it is read."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        value = self.current
        self.current += timedelta(seconds=1)
        return value

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def config(tmp_path):
    return DedupeConfig(database_path=tmp_path / 'kinmerge.db', lock_wait_seconds=0.2)


@pytest.fixture
def db(tmp_path, clock):
    database = FamilyDatabase(tmp_path / 'kinmerge.db', clock=clock)
    yield database
    database.close()


@pytest.fixture
def service(db, config):
    return DedupeService(db, config)


@pytest.fixture
def family_id(db):
    return db.create_family('Smith family')


@pytest.fixture
def john(db, family_id):
    return db.add_person(
        family_id,
        given_name='John',
        surname='Smith',
        gender='M',
        birth_date='1950-01-01',
        birth_place='Springfield',
        bio='',
    )


@pytest.fixture
def jon(db, family_id):
    return db.add_person(
        family_id,
        given_name='Jon',
        surname='Smith',
        gender='M',
        birth_date='1950-01-01',
        birth_place='Springfield',
        bio='Loved fishing.',
    )


@pytest.fixture
def mary(db, family_id):
    return db.add_person(
        family_id,
        given_name='Mary',
        surname='Jones',
        gender='F',
        birth_date='1890',
        birth_place='Dublin, Ireland',
    )
