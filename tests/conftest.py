import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

# Keep the import-time engine away from the working directory.
os.environ.setdefault("DB_PATH", str(Path(tempfile.mkdtemp(prefix="luckyhub_boot_")) / "boot.db"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from luckyhub.core.bootstrap import get_bot_user  # noqa: E402
from luckyhub.db.session import SessionLocal, configure_database, create_tables  # noqa: E402
from luckyhub.services.llm import get_llm_client  # noqa: E402

PASSWORD = "StrongPass123"


class FakeScenario(str, Enum):
    OK = "OK"
    BUSY = "BUSY"


class FakeLLMClient:
    def __init__(self, scenario: FakeScenario) -> None:
        self.scenario = scenario
        self.calls: list[tuple[str, Optional[str]]] = []

    def generate_text(self, prompt: str, image: Optional[str] = None) -> Optional[str]:
        self.calls.append((prompt, image))
        if self.scenario == FakeScenario.BUSY:
            return None
        return "Add more vegetables and keep the rice portion small."


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "luckyhub_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from luckyhub.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _headers(user_id: int) -> dict[str, str]:
    return {"x-user-id": str(user_id)}


@pytest.fixture
def register_user(client: TestClient) -> Callable[..., dict]:
    def _register(fullname: str = "Test Member") -> dict:
        username = f"user_{uuid4().hex[:10]}"
        signup = client.post(
            "/dangky",
            json={
                "username": username,
                "password": PASSWORD,
                "fullname": fullname,
                "birthday": "1995-05-17",
                "height": 168,
                "gender": "Female",
            },
        )
        assert signup.status_code == 201
        login = client.post("/dangnhap", json={"username": username, "password": PASSWORD})
        assert login.status_code == 200
        user = login.json()["user"]
        return {"id": user["id"], "username": username, "headers": _headers(user["id"]), "user": user}

    return _register


@pytest.fixture
def admin(client: TestClient) -> dict:
    reset = client.get("/adminreset")
    assert reset.status_code == 200
    login = client.post("/dangnhap", json={"username": "admin", "password": "admin"})
    assert login.status_code == 200
    user = login.json()["user"]
    return {"id": user["id"], "headers": _headers(user["id"]), "user": user}


@pytest.fixture
def bot_id(client: TestClient, db_session: Session) -> int:
    bot = get_bot_user(db_session)
    assert bot is not None
    return bot.id


@pytest.fixture
def override_llm(app) -> Callable[[FakeScenario], FakeLLMClient]:
    def _override(scenario: FakeScenario) -> FakeLLMClient:
        fake = FakeLLMClient(scenario)
        app.dependency_overrides[get_llm_client] = lambda: fake
        return fake

    return _override
