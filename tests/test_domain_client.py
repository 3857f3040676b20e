import asyncio

import httpx
import pytest

from rade_bot.src.services.domain_client import (
    ActorNotFoundError,
    DomainBackendError,
    InMemoryDomainBackend,
    RadeApiClient,
)


def make_client(handler):
    return RadeApiClient("https://api.test", token="secret-token", transport=httpx.MockTransport(handler))


def test_client_sends_raw_token_and_parses_json():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"studentName": "Maria Clara Souza"})

    result = asyncio.run(make_client(handler).get_student_info("98765432100"))

    assert result == {"studentName": "Maria Clara Souza"}
    assert seen == {"path": "/virtual-assistance/students/98765432100", "authorization": "secret-token"}


def test_not_found_is_actor_not_found():
    client = make_client(lambda request: httpx.Response(404, json={"message": "not found"}))

    with pytest.raises(ActorNotFoundError):
        asyncio.run(client.get_coordinator_info("11111111111"))


def test_server_error_and_bad_json_are_backend_errors():
    failing = make_client(lambda request: httpx.Response(500, text="boom"))
    garbage = make_client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(DomainBackendError) as error:
        asyncio.run(failing.get_students_professionals("98765432100"))
    assert not isinstance(error.value, ActorNotFoundError)

    with pytest.raises(DomainBackendError):
        asyncio.run(garbage.get_coordinators_students("11111111111"))


def test_connection_failure_is_backend_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DomainBackendError):
        asyncio.run(make_client(handler).get_students_scheduled_activities("98765432100"))


def test_in_memory_backend_scopes_data_by_group():
    backend = InMemoryDomainBackend()

    activities = asyncio.run(backend.get_students_scheduled_activities("98765432100"))
    professionals = asyncio.run(backend.get_students_professionals("98765432100"))
    info = asyncio.run(backend.get_student_info("98765432100"))

    assert {a["groupName"] for a in activities} <= {"Grupo 3 - Saúde da Criança", "Grupo 4 - Saúde Mental"}
    assert "Dr. João Mendes" in {p["name"] for p in professionals}
    assert "Dr. Ricardo Silva" not in {p["name"] for p in professionals}
    assert "cpf" not in info


def test_in_memory_coordinator_endpoints_require_a_coordinator():
    backend = InMemoryDomainBackend()

    with pytest.raises(ActorNotFoundError):
        asyncio.run(backend.get_coordinators_students("98765432100"))

    students = asyncio.run(backend.get_coordinators_students("11111111111"))
    assert {s["name"] for s in students} >= {"Maria Clara Souza", "Bruno Lima"}
