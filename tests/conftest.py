import json

import pytest

from auth import hash_password
from gallery_server import create_app


CAPTURE_NAMES = [
    "cap_20230101T120000.jpg",
    "cap_20230101T130000.mp4",
    "cap_20230102T090000.png",
    "not_a_capture.txt",
]


@pytest.fixture
def capture_dir(tmp_path):
    folder = tmp_path / "captures"
    folder.mkdir()
    for name in CAPTURE_NAMES:
        (folder / name).write_bytes(b"data")
    return folder


@pytest.fixture
def config_path(tmp_path, capture_dir):
    path = tmp_path / "server_config.json"
    path.write_text(json.dumps({
        "web_username": "admin",
        "web_password_hash": hash_password("secret", iterations=1000),
        "capture_dir": str(capture_dir),
        "site_name": "Test Gallery",
    }), encoding="utf-8")
    return path


@pytest.fixture
def app(config_path):
    app = create_app(config_path)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in_client(client):
    resp = client.post("/login", data={"username": "admin", "password": "secret"})
    assert resp.status_code == 302
    return client
