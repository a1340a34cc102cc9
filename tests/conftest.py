import pytest

import glassbox.persistence as persistence


@pytest.fixture(autouse=True)
def _isolated_repository(monkeypatch):
    """Each test starts without a cached repository or database env."""
    monkeypatch.delenv("GLASSBOX_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None
