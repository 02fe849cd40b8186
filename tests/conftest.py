from typing import Any, Dict, Iterator, List, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from auth import get_optional_user_id
from llm import get_inference_client
from sessions import create_learning_session

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeInferenceClient:
    """Replays scripted events and records what the model was sent."""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None) -> None:
        self.events = events or []
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def stream(self, messages, *, tools, system) -> Iterator[Dict[str, Any]]:
        self.calls.append({"messages": list(messages), "tools": list(tools), "system": system})
        if self.error is not None:
            raise self.error
        return iter(self.events)


@pytest.fixture
def mongo_db(monkeypatch):
    db = mongomock.MongoClient()["tutor_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def fake_llm() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def client(mongo_db, fake_llm):
    main.app.dependency_overrides[get_optional_user_id] = lambda: USER_ID
    main.app.dependency_overrides[get_inference_client] = lambda: fake_llm
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def session_factory(mongo_db):
    def _factory(user_id: str = USER_ID, title: str = "Biology", subject: str = "Cells") -> str:
        result = create_learning_session(user_id, title, subject)
        assert result["success"], result
        return result["sessionId"]

    return _factory
