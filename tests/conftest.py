"""Shared test fixtures."""
from contextlib import ExitStack
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from crmscore.database import Base

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

# Modules that bound get_session at import time
_SESSION_USERS = [
    'crmscore.routes.leads',
    'crmscore.routes.deals',
    'crmscore.routes.analytics',
]


@pytest.fixture
def now():
    """Fixed reference time for scoring."""
    return NOW


@pytest.fixture(autouse=True)
def reset_rules_cache():
    """Each test starts with freshly loaded rule tables."""
    from crmscore.scoring.rules import reset_scoring_config
    reset_scoring_config()
    yield
    reset_scoring_config()


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import crmscore.models.lead
    import crmscore.models.deal
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def patch_get_session(db_session):
    """Route every get_session() used by the blueprints to the test session.

    close() is disabled so handlers closing the session in their finally
    blocks don't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with ExitStack() as stack:
        for module in _SESSION_USERS:
            stack.enter_context(patch(f'{module}.get_session', return_value=db_session))
        yield db_session
    db_session.close = _real_close


@pytest.fixture
def app():
    """Flask test app."""
    from crmscore import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app, patch_get_session):
    """Flask test client wired to the in-memory database."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_lead_input():
    """Factory for lead snapshot dicts — a middling website lead by default."""
    def _make(**overrides):
        defaults = dict(
            email='jane@acme.io',
            phone='',
            source='website',
            status='new',
            company='',
            job_title='',
            priority='low',
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            engagement={'emails_opened': 0, 'emails_clicked': 0, 'calls_connected': 0},
        )
        defaults.update(overrides)
        return defaults
    return _make


@pytest.fixture
def make_deal_input():
    """Factory for deal snapshot dicts — an active, unremarkable deal by default."""
    def _make(**overrides):
        defaults = dict(
            stage='qualification',
            value=20000,
            probability=50,
            expected_close_date=None,
            engagement={
                'emails_opened': 0,
                'emails_clicked': 0,
                'calls_made': 0,
                'meetings_held': 0,
                'proposals_sent': 0,
            },
            activities=3,
        )
        defaults.update(overrides)
        return defaults
    return _make
