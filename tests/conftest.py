import os
from dataclasses import dataclass
from typing import Any, Dict, Generator, Iterator

os.environ.setdefault('JWT_SECRET', 'test-secret-key-for-healthrecord-tests')
os.environ.setdefault('USE_OFFLINE_MODEL', 'true')
os.environ.setdefault('HEALTHRECORD_DATABASE_URL', 'sqlite://')

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from healthrecord.db import Base, enable_sqlite_foreign_keys, get_session


@dataclass
class DatabaseContext:
    """Holds state for the ephemeral in-memory SQLite database."""

    engine: sa.engine.Engine
    session_factory: sessionmaker

    def make_session(self) -> Session:
        return self.session_factory()


@pytest.fixture(scope='function')
def in_memory_db() -> Iterator[DatabaseContext]:
    """Provide an isolated in-memory SQLite database for each test."""

    from healthrecord import main

    engine = sa.create_engine(
        'sqlite+pysqlite:///:memory:',
        future=True,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)

    session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )

    def _session_dependency() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    main.app.dependency_overrides[get_session] = _session_dependency

    try:
        yield DatabaseContext(engine=engine, session_factory=session_factory)
    finally:
        main.app.dependency_overrides.pop(get_session, None)
        engine.dispose()


@pytest.fixture(scope='function')
def db_session(in_memory_db: DatabaseContext) -> Iterator[Session]:
    """Yield a SQLAlchemy session tied to the in-memory database."""

    session = in_memory_db.make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope='function')
def api_client(in_memory_db: DatabaseContext) -> Iterator[TestClient]:
    """Yield a FastAPI test client bound to the in-memory database."""

    from healthrecord import main

    with TestClient(main.app, raise_server_exceptions=False) as client:
        yield client


def registration_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        'email': 'jane@example.com',
        'password': 'correct-horse',
        'first_name': 'Jane',
        'last_name': 'Doe',
        'date_of_birth': '1985-04-12',
    }
    payload.update(overrides)
    return payload


def register(client: TestClient, **overrides: Any) -> Dict[str, str]:
    """Register an account and return bearer headers for it."""

    resp = client.post('/users/register', json=registration_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return {'Authorization': f"Bearer {resp.json()['token']}"}


@pytest.fixture(scope='function')
def auth_headers(api_client: TestClient) -> Dict[str, str]:
    return register(api_client)


@pytest.fixture(scope='function')
def other_headers(api_client: TestClient) -> Dict[str, str]:
    return register(api_client, email='sam@example.com', first_name='Sam')


def create_provider(client: TestClient, headers: Dict[str, str], **overrides: Any) -> int:
    payload = {'provider_name': 'Dr. Smith', 'provider_type': 'personal_doctor'}
    payload.update(overrides)
    resp = client.post('/providers', json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()['id']


def create_visit(client: TestClient, headers: Dict[str, str], provider_id: int, **overrides: Any) -> int:
    payload = {
        'provider_id': provider_id,
        'visit_date': '2030-05-01',
        'visit_time': '09:30:00',
        'visit_reason': 'Annual checkup',
    }
    payload.update(overrides)
    resp = client.post('/visits', json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()['id']


def complete_visit(client: TestClient, headers: Dict[str, str], visit_id: int) -> None:
    resp = client.put(f'/visits/{visit_id}', json={'status': 'completed'}, headers=headers)
    assert resp.status_code == 200, resp.text
