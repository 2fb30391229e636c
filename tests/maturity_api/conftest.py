import os

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['PASSWORD_HASH_ITERATIONS'] = '1000'
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from maturity_api.auth.jwt_handler import create_access_token  # noqa: E402
from maturity_api.auth.passwords import hash_password  # noqa: E402
from maturity_api.database import Base, get_db  # noqa: E402
from maturity_api.main import app  # noqa: E402
from maturity_api.models.domain import Domain, Scope, Subdomain  # noqa: E402
from maturity_api.models.user import ROLE_USER, User, UserDomain  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def create_user(db):
    def factory(username: str = 'consultant', role: str = ROLE_USER, password: str = 'secret123', **fields) -> User:
        password_hash, password_salt = hash_password(password)
        user = User(
            username=username,
            email=fields.pop('email', f'{username}@example.com'),
            password_hash=password_hash,
            password_salt=password_salt,
            role=role,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def auth_headers():
    def factory(user: User) -> dict:
        return {'Authorization': f'Bearer {create_access_token(user.username, user.role)}'}

    return factory


@pytest.fixture
def taxonomy(db):
    """Two domains, each with one subdomain and one scope."""
    governance = Domain(name='Data Governance', display_order=1)
    analytics = Domain(name='Analytics', display_order=2)
    db.add_all([governance, analytics])
    db.flush()

    quality = Subdomain(domain_id=governance.id, name='Data Quality', lead_consultant='lead1')
    reporting = Subdomain(domain_id=analytics.id, name='Reporting')
    db.add_all([quality, reporting])
    db.flush()

    db.add_all([
        Scope(subdomain_id=quality.id, name='Profiling', created_by='admin'),
        Scope(subdomain_id=reporting.id, name='Dashboards', created_by='admin'),
    ])
    db.commit()
    return {'governance': governance, 'analytics': analytics, 'quality': quality, 'reporting': reporting}


@pytest.fixture
def assign_domain(db):
    def factory(user: User, domain: Domain) -> None:
        db.add(UserDomain(user_id=user.id, domain_id=domain.id))
        db.commit()

    return factory
