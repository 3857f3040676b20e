import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from rade_bot.src.config.settings import Settings

logger = logging.getLogger(__name__)

MOCK_DATA_PATH = Path(__file__).resolve().parent.parent / "data" / "mock_data.json"


class DomainBackendError(Exception):
    """Transient or unexpected failure talking to the RADE backend."""


class ActorNotFoundError(DomainBackendError):
    """The backend answered, but there is no record for the given CPF."""


def only_digits(value: Optional[str]) -> str:
    return "".join(filter(str.isdigit, value or ""))


class RadeApiClient:
    """
    Async HTTP client for the RADE virtual-assistance endpoints.

    The backend expects the raw token in the Authorization header (no Bearer
    prefix). A 404 becomes ActorNotFoundError; every other failure, timeouts
    included, becomes DomainBackendError.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = token
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def _get(self, path: str, what: str) -> Any:
        logger.debug(f"GET {path}")
        try:
            response = await self.client.get(path)
        except httpx.RequestError as e:
            logger.error(f"Backend request error on {path}: {e!r}")
            raise DomainBackendError(f"Erro ao buscar {what}: falha de comunicação com o servidor.") from e

        if response.status_code == 404:
            raise ActorNotFoundError(f"Nenhum registro encontrado ao buscar {what}.")
        if response.status_code >= 400:
            logger.error(f"Backend answered {response.status_code} on {path}: {response.text[:300]}")
            raise DomainBackendError(f"Erro ao buscar {what}: status {response.status_code}.")

        try:
            return response.json()
        except ValueError as e:
            raise DomainBackendError(f"Erro ao buscar {what}: resposta inválida do servidor.") from e

    async def get_student_info(self, cpf: str) -> Dict[str, Any]:
        return await self._get(f"/virtual-assistance/students/{cpf}", "informações do estudante")

    async def get_coordinator_info(self, cpf: str) -> Dict[str, Any]:
        return await self._get(f"/virtual-assistance/coordinators/{cpf}", "informações do coordenador")

    async def get_students_scheduled_activities(self, cpf: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/virtual-assistance/students/scheduled-activities/{cpf}", "atividades agendadas"
        )

    async def get_students_professionals(self, cpf: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/virtual-assistance/students/professionals/{cpf}", "profissionais do estudante"
        )

    async def get_coordinators_ongoing_activities(self, cpf: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/virtual-assistance/coordinators/ongoing-activities/{cpf}", "atividades em andamento"
        )

    async def get_coordinators_professionals(self, cpf: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/virtual-assistance/coordinators/professionals/{cpf}", "profissionais do coordenador"
        )

    async def get_coordinators_students(self, cpf: str) -> List[Dict[str, Any]]:
        return await self._get(
            f"/virtual-assistance/coordinators/students/{cpf}", "estudantes do coordenador"
        )

    async def close(self):
        await self.client.aclose()


class InMemoryDomainBackend:
    """Backend served from the bundled JSON file; used in simulation mode and tests."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        if data is None:
            with open(MOCK_DATA_PATH, encoding="utf-8") as f:
                data = json.load(f)
        self.data = data
        self.calls: List[tuple] = []

    def _student(self, cpf: str) -> Optional[Dict[str, Any]]:
        cpf = only_digits(cpf)
        return next((s for s in self.data.get("students", []) if s["cpf"] == cpf), None)

    def _coordinator(self, cpf: str) -> Optional[Dict[str, Any]]:
        cpf = only_digits(cpf)
        return next((c for c in self.data.get("coordinators", []) if c["cpf"] == cpf), None)

    def _require_coordinator(self, cpf: str) -> Dict[str, Any]:
        coordinator = self._coordinator(cpf)
        if coordinator is None:
            raise ActorNotFoundError(f"Coordenador com CPF {cpf} não encontrado.")
        return coordinator

    def _groups_for(self, cpf: str) -> Optional[set]:
        """Groups visible to the CPF; None means every group (coordinators)."""
        if self._coordinator(cpf) is not None:
            return None
        student = self._student(cpf)
        if student is None:
            raise ActorNotFoundError(f"Estudante com CPF {cpf} não encontrado.")
        return set(student.get("groupNames", []))

    async def get_student_info(self, cpf: str) -> Dict[str, Any]:
        self.calls.append(("get_student_info", cpf))
        student = self._student(cpf)
        if student is None:
            raise ActorNotFoundError(f"Estudante com CPF {cpf} não encontrado.")
        return {k: v for k, v in student.items() if k != "cpf"}

    async def get_coordinator_info(self, cpf: str) -> Dict[str, Any]:
        self.calls.append(("get_coordinator_info", cpf))
        coordinator = self._require_coordinator(cpf)
        return {k: v for k, v in coordinator.items() if k != "cpf"}

    async def get_students_scheduled_activities(self, cpf: str) -> List[Dict[str, Any]]:
        self.calls.append(("get_students_scheduled_activities", cpf))
        groups = self._groups_for(cpf)
        return [
            a for a in self.data.get("scheduledActivities", [])
            if groups is None or a["groupName"] in groups
        ]

    async def get_students_professionals(self, cpf: str) -> List[Dict[str, Any]]:
        self.calls.append(("get_students_professionals", cpf))
        groups = self._groups_for(cpf)
        return [
            p for p in self.data.get("professionals", [])
            if groups is None or groups.intersection(p.get("groupNames", []))
        ]

    async def get_coordinators_ongoing_activities(self, cpf: str) -> List[Dict[str, Any]]:
        self.calls.append(("get_coordinators_ongoing_activities", cpf))
        self._require_coordinator(cpf)
        return list(self.data.get("ongoingActivities", []))

    async def get_coordinators_professionals(self, cpf: str) -> List[Dict[str, Any]]:
        self.calls.append(("get_coordinators_professionals", cpf))
        self._require_coordinator(cpf)
        return list(self.data.get("coordinatorProfessionals", []))

    async def get_coordinators_students(self, cpf: str) -> List[Dict[str, Any]]:
        self.calls.append(("get_coordinators_students", cpf))
        self._require_coordinator(cpf)
        return [
            {
                "cpf": s["cpf"],
                "name": s["studentName"],
                "email": s["studentEmail"],
                "phone": s.get("studentPhone"),
                "groupNames": s.get("groupNames", []),
            }
            for s in self.data.get("students", [])
        ]

    async def close(self):
        pass


def build_domain_backend(settings: Settings):
    if settings.use_api_data:
        logger.info(f"Using RADE API at {settings.rade_api_base_url}")
        return RadeApiClient(
            settings.rade_api_base_url,
            token=settings.rade_api_token,
            timeout=settings.rade_api_timeout,
        )
    logger.info("Using bundled mock data for the RADE backend")
    return InMemoryDomainBackend()
