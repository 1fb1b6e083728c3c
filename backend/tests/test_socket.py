import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from mock_interview.config import Settings
from mock_interview.db import Database
from mock_interview.main import Services, create_app
from mock_interview.speech import SpeechModels
from mock_interview.store import SessionStore

from conftest import SECRET, SUMMARY_JSON, FakeGenerator


@pytest.fixture
def http(tmp_path, verifier):
    """Sync client; the app's startup hook creates the tables on the client's own loop."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'socket.db'}")
    services = Services(
        settings=Settings(auth_secret=SECRET, load_speech_models=False),
        database=database,
        store=SessionStore(database),
        verifier=verifier,
        generator=FakeGenerator(),
        speech=SpeechModels(),
    )
    with TestClient(create_app(services)) as client:
        yield client


def create_session(http, verifier):
    body = {
        "idToken": verifier.issue("user-1"),
        "role": "Software Engineer",
        "level": "Fresher",
        "interviewType": "HR",
        "numQuestions": 3,
    }
    return http.post("/interviews", json=body).json()["sessionId"]


def status_of(http, verifier, session_id):
    headers = {"Authorization": f"Bearer {verifier.issue('user-1')}"}
    return http.get(f"/interviews/{session_id}", headers=headers).json()["interview"]["status"]


def test_non_owner_is_turned_away(http, verifier):
    session_id = create_session(http, verifier)
    with http.websocket_connect(f"/ws/interview/{session_id}") as ws:
        ws.send_json({"type": "hello", "speechSupported": False, "idToken": verifier.issue("intruder")})
        assert ws.receive_json() == {"type": "error", "message": "Forbidden"}
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4403
    assert status_of(http, verifier, session_id) == "in_progress"


def test_controls_before_hello_are_refused(http, verifier):
    session_id = create_session(http, verifier)
    with http.websocket_connect(f"/ws/interview/{session_id}") as ws:
        ws.send_json({"type": "end_now"})
        assert ws.receive_json()["type"] == "error"
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4401
    assert status_of(http, verifier, session_id) == "in_progress"


def test_owner_gets_a_live_session(http, verifier):
    session_id = create_session(http, verifier)
    with http.websocket_connect(f"/ws/interview/{session_id}") as ws:
        ws.send_json({"type": "hello", "speechSupported": False, "idToken": verifier.issue("user-1")})
        ready = ws.receive_json()
        assert ready["type"] == "session_ready"
        assert ready["total"] == 3
        ws.send_json({"type": "ping"})
        seen = set()
        while not {"pong", "state"} <= seen:
            seen.add(ws.receive_json()["type"])


def test_completed_interview_cannot_be_rerun(http, verifier):
    session_id = create_session(http, verifier)
    body = {
        "idToken": verifier.issue("user-1"),
        "turns": [],
        "perQuestionFeedback": [],
        "summary": json.loads(SUMMARY_JSON),
    }
    assert http.post(f"/interviews/{session_id}/complete", json=body).status_code == 200
    assert http.post(f"/interviews/{session_id}/complete", json=body).status_code == 400

    with http.websocket_connect(f"/ws/interview/{session_id}") as ws:
        assert ws.receive_json() == {"type": "error", "message": "Interview already completed"}
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()
