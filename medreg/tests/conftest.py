"""
MEDREG Test Configuration — shared fixtures.
"""
import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from medreg.auth import generate_keypair, sign_challenge
from medreg.registry import Registry

OWNER = "a1b2c3d4e5f60718"
STRANGER = "ffffeeeeddddcccc"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "medreg_test.db"


@pytest.fixture
def registry(db_path):
    """Registry deployed by OWNER on an isolated database."""
    return Registry.deploy(OWNER, db_path)


@pytest.fixture
def fresh_app(tmp_path, monkeypatch):
    """Fresh API server with isolated database and JWT secret."""
    db_path = tmp_path / "medreg_api.db"
    monkeypatch.setenv("MEDREG_DB_PATH", str(db_path))
    monkeypatch.setenv("MEDREG_JWT_SECRET", str(tmp_path / ".jwt_secret"))

    # Force reimport to pick up the new DB path
    sys.modules.pop("medreg.api_server", None)
    api_server = importlib.import_module("medreg.api_server")

    client = TestClient(api_server.app)
    return client, api_server, db_path


def register_and_auth(api_module, name="records-office"):
    """Helper: register an account and get a JWT for it."""
    auth = api_module._auth
    private_key, public_key = generate_keypair()
    address = auth.register(name, public_key)

    challenge = auth.create_challenge(address)
    result = auth.verify_challenge(address, sign_challenge(private_key, challenge))

    return {
        "address": address,
        "token": result.token,
        "private_key": private_key,
        "public_key": public_key,
        "headers": {"Authorization": f"Bearer {result.token}"},
    }
