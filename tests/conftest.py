import os
import tempfile

import pytest

# app.py builds a module-level app on import; keep its upload dir out of the checkout
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="gateway-uploads-"))
os.environ.pop("REDIS_URL", None)

from fastapi.testclient import TestClient

from app import create_app
from constants import Settings

FRONTEND = "https://frontend.example"
LOCAL_ORIGIN = "http://localhost:3000"
EVIL_ORIGIN = "http://evil.example"


class Recorder:
    """Stand-in for a client's outbound channel; remembers every (event, data) sent."""

    def __init__(self):
        self.frames = []

    async def __call__(self, event, data):
        self.frames.append((event, data))

    def events(self, name):
        return [data for event, data in self.frames if event == name]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        frontend_url=FRONTEND,
        environment="test",
        upload_dir=str(tmp_path / "uploads"),
        max_body_bytes=1024,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client
