from unittest.mock import MagicMock, Mock

import pytest
from fastapi.testclient import TestClient

from imperium.config import Settings
from imperium.database import get_db
from imperium.dependencies import AppContainer
from imperium.main import app

TEST_SECRETS = {
    "meta_app_secret": "app-secret",
    "meta_webhook_verify_token": "verify-token",
    "crm_intake_secret": "intake-secret",
    "sheets_webhook_secret": "sheets-secret",
    "telephony_webhook_secret": "phone-secret",
    "crm_api_key": "crm-key",
    "zadarma_from_number": "971800000000",
}


@pytest.fixture
def db_session():
    """Mock database session (MagicMock so savepoints work as context managers)."""
    return MagicMock()


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, **TEST_SECRETS)


@pytest.fixture
def container(test_settings):
    return AppContainer(
        settings=test_settings,
        engine=None,
        session_factory=None,
        providers=[],
        adapters={},
        telephony=Mock(),
    )


@pytest.fixture
def client(container, db_session):
    app.state.container = container
    app.dependency_overrides[get_db] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.container = None
