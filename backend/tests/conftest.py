"""Shared test fixtures and configuration for backend tests."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from login_app.auth.broker import AuthorizationBroker, PresentationAnchor
from login_app.auth.identity_service import IdentityService
from login_app.auth.presenters import Dialog, Router
from login_app.auth.schemas import User
from login_app.main import app


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app (lifespan not started)."""
    return TestClient(app)


@pytest.fixture
def user():
    return User(objectId="u-123", username="alice", sessionToken="r:session")


@pytest.fixture
def identity_service(user):
    service = MagicMock(spec=IdentityService)
    service.login = AsyncMock(return_value=user)
    service.login_with_apple = AsyncMock(return_value=user)
    service.become = AsyncMock(return_value=user)
    return service


@pytest.fixture
def broker():
    broker = MagicMock(spec=AuthorizationBroker)
    broker.perform_requests = AsyncMock()
    return broker


@pytest.fixture
def router():
    return MagicMock(spec=Router)


@pytest.fixture
def dialog():
    return MagicMock(spec=Dialog)


@pytest.fixture
def anchor():
    return MagicMock(spec=PresentationAnchor)
