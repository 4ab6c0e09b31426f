"""
Pytest configuration and shared test helpers for backend tests.
"""
import base64
import io
import os

# Skip MongoDB connection when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest
from PIL import Image

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def _clear_dependency_overrides():
    yield
    app.dependency_overrides.clear()


def make_png_base64(size=(120, 40), color=(20, 20, 20, 255)) -> str:
    """A small opaque PNG, base64 encoded the way the signature pad sends it (no data: prefix)."""
    image = Image.new("RGBA", size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def signature_png():
    return make_png_base64()


@pytest.fixture
def signature_data_url():
    return "data:image/png;base64," + make_png_base64()
