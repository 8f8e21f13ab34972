"""
Pytest configuration and shared test helpers for backend tests.
"""
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Lifespan is not run."""
    return TestClient(app)


@pytest.fixture
def mock_db():
    """MagicMock database whose collections answer with empty results by default."""
    db = MagicMock()
    for name in ("public_form_links", "clients", "brokers", "form_templates",
                 "documents", "public_form_submissions"):
        collection = getattr(db, name)
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock()
    return db
