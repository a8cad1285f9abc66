import pytest

from timesheet_tracker import create_app
from timesheet_tracker.storage import MemoryStore


@pytest.fixture
def app(tmp_path):
    """App backed by JSON files in a temporary data directory."""
    app = create_app({"TESTING": True, "DATA_DIR": str(tmp_path / "data")})
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def memory_app():
    """App backed by in-memory stores."""
    return create_app({"TESTING": True}, entry_store=MemoryStore(), rate_store=MemoryStore())
