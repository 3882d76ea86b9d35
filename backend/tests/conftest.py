import os

# Avant tout import de config : pas de rate limiting pendant les tests
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from helpers import NOW


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as c:
        yield c
