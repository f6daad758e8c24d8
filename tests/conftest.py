from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, List, Union

import jwt
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from docongo.config.database import Database  # noqa: E402
from docongo.config.settings import settings  # noqa: E402
from docongo.services.session_service import SessionService  # noqa: E402

TEST_JWT_SECRET = "test-secret-for-docongo"


class FakeGateway:
    """Scripted stand-in for ModelGateway; records every call."""

    def __init__(self, responses: List[Union[str, Exception]] | None = None):
        self.responses = list(responses or [])
        self.calls: list = []

    def queue(self, *responses: Union[str, Exception]) -> "FakeGateway":
        self.responses.extend(responses)
        return self

    async def invoke(self, messages) -> str:
        self.calls.append(list(messages))
        if not self.responses:
            raise AssertionError("FakeGateway called more times than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def model_reply(
    message: str = "Tell me more.",
    current_stage: str = "greeting",
    next_stage: bool = False,
    detected_symptoms: list | None = None,
    confidence_level: float = 0.8,
    suggested_followup: str = "How long has this been going on?",
) -> str:
    return json.dumps(
        {
            "message": message,
            "current_stage": current_stage,
            "next_stage": next_stage,
            "detected_symptoms": detected_symptoms or [],
            "confidence_level": confidence_level,
            "suggested_followup": suggested_followup,
        }
    )


PRESCRIPTION_JSON = {
    "description_of_issue": "Tension-type headache for two days.",
    "ai_analysis": "Symptoms are consistent with a tension headache without red flags.",
    "medicines": [
        {
            "name": "Paracetamol (Crocin, Calpol)",
            "dosage": "500mg twice daily",
            "duration": "3 days",
            "purpose": "Pain relief",
            "prescription_required": False,
            "availability": "Easily available",
            "notes": "Take after food",
        }
    ],
    "general_tips": ["Stay hydrated", "Rest in a dark room"],
    "diagnostic_tests": [],
    "emergency_signs": ["Sudden worst headache of your life"],
    "follow_up": "See a GP if not better in 3 days.",
}


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def mongo_db():
    Database.database = AsyncMongoMockClient()["docongo_test"]
    yield Database.database
    Database.database = None


@pytest.fixture
def sessions(mongo_db) -> SessionService:
    return SessionService()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def jwt_secret(monkeypatch) -> str:
    monkeypatch.setattr(settings, "jwt_secret", TEST_JWT_SECRET)
    return TEST_JWT_SECRET


@pytest.fixture
def auth_headers(jwt_secret) -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        token = jwt.encode({"userId": user_id}, jwt_secret, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def client(mongo_db, gateway, monkeypatch):
    import main
    from docongo.api.dependencies import get_conversation_gateway, get_prescription_gateway

    async def _noop() -> Any:
        return None

    monkeypatch.setattr(Database, "connect_db", _noop)
    monkeypatch.setattr(Database, "close_db", _noop)
    monkeypatch.setattr(settings, "llm_api_key", None)

    main.app.dependency_overrides[get_conversation_gateway] = lambda: gateway
    main.app.dependency_overrides[get_prescription_gateway] = lambda: gateway
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
