import pytest
from fastapi.testclient import TestClient
from leadscore.main import app, get_store
from leadscore.models import ScoringConfig
from leadscore.store import ConfigStore
from tests.factories import BASE_CONFIG


@pytest.fixture
def config() -> ScoringConfig:
    return ScoringConfig.model_validate(BASE_CONFIG)


@pytest.fixture
def store(tmp_path) -> ConfigStore:
    return ConfigStore(str(tmp_path))


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
