import pytest
from fakes import ScriptedChatModel
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from rade_bot.main import app
from rade_bot.src.core.app_state import (
    build_app_state,
    get_chat_service,
    get_metrics_service,
    get_notification_sink,
    get_report_service,
)
from rade_bot.src.services.handoff_service import HandoffAgent, InMemoryAgentDirectory

AUTHENTICATED = {
    "current_state": "AUTHENTICATED",
    "data": {"cpf": "98765432100", "role": "student", "name": "Maria Clara Souza", "conversation_history": []},
}


@pytest.fixture
def primary():
    return ScriptedChatModel(responses=[AIMessage(content="Olá, Maria!")])


@pytest.fixture
def state(settings, backend, primary):
    directory = InMemoryAgentDirectory([HandoffAgent("Isabel", "41990000000", ["Universidade Federal do Paraná"])])
    return build_app_state(settings, backend=backend, llms=(primary, None), directory=directory)


@pytest.fixture
def client(state):
    app.dependency_overrides[get_chat_service] = lambda: state.chat_service
    app.dependency_overrides[get_report_service] = lambda: state.reports
    app.dependency_overrides[get_metrics_service] = lambda: state.metrics
    app.dependency_overrides[get_notification_sink] = lambda: state.sink
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_menu_first_turn(client):
    response = client.post("/chat/menu", json={"message": "oi"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["next_state"] == {"current_state": "AWAITING_USER_TYPE", "data": {}}


def test_menu_state_round_trip(client):
    response = client.post(
        "/chat/menu",
        json={"message": "1", "state": {"current_state": "AWAITING_USER_TYPE", "data": {}}},
    )

    assert response.json()["next_state"]["current_state"] == "AWAITING_STUDENT_CPF"


def test_unknown_state_restarts_the_flow(client):
    response = client.post("/chat/menu", json={"message": "1", "state": {"current_state": "BOGUS", "data": {}}})

    assert response.json()["next_state"]["current_state"] == "AWAITING_USER_TYPE"


def test_open_chat_turn_records_a_metric(client):
    response = client.post("/chat/open", json={"message": "oi", "state": AUTHENTICATED, "environment": "mobile"})

    body = response.json()
    assert body["response"] == "Olá, Maria!"
    assert len(body["next_state"]["data"]["conversation_history"]) == 2

    metrics = client.get("/metrics").json()
    assert metrics["total_requests"] == 1
    assert metrics["recent_activity"][0]["user_id"] == "98765432100"

    assert client.delete("/metrics").json()["success"] is True
    assert client.get("/metrics").json()["total_requests"] == 0


def test_model_error_returns_failure_and_previous_state(client, primary):
    primary.responses = [ValueError("invalid request")]

    response = client.post("/chat/open", json={"message": "oi", "state": AUTHENTICATED})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is False
    assert body["error"] == "ValueError"
    assert body["next_state"] == AUTHENTICATED
    assert "invalid request" not in body["response"]


def test_report_download(client, state):
    report_id = state.reports.create_snapshot([{"name": "Dr. João Mendes", "phone": "41987654327"}], "Lista de Pessoas")

    response = client.get(f"/reports/{report_id}/csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert "Dr. João Mendes" in response.text


def test_report_errors(client, state):
    report_id = state.reports.create_snapshot([{"name": "A"}], "Lista de Pessoas")

    assert client.get("/reports/missing/csv").status_code == 404
    assert client.get(f"/reports/{report_id}/xlsx").status_code == 400


def test_handoff_queue(client):
    state = {
        "current_state": "AWAITING_STUDENT_HELP_CHOICE",
        "data": {"cpf": "98765432100", "phone": "11999999999", "last_option": "1"},
    }
    client.post("/chat/menu", json={"message": "2", "state": state})

    queue = client.get("/handoff/queue/Universidade Federal do Paraná").json()

    assert queue["total"] == 1
    assert queue["tickets"][0]["agent_name"] == "Isabel"


def test_hybrid_menu_hands_over_to_the_assistant(client):
    menu = {
        "current_state": "AWAITING_STUDENT_MENU_CHOICE",
        "data": {"cpf": "98765432100", "name": "Maria Clara Souza", "phone": "11999999999"},
    }

    greeted = client.post("/chat/hybrid", json={"message": "7", "state": menu}).json()
    answered = client.post("/chat/hybrid", json={"message": "oi", "state": greeted["next_state"]}).json()

    assert greeted["next_state"]["current_state"] == "AI_CHAT"
    assert answered["success"] is True
    assert answered["response"] == "Olá, Maria!"
    assert answered["next_state"]["current_state"] == "AI_CHAT"
