import logging
import os
import re
import threading
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from rade_bot.src.models.chat_models import Actor, ActorRole
from rade_bot.src.services.domain_client import DomainBackendError
from rade_bot.src.services.summary_service import SummaryService
from rade_bot.src.services.user_service import fetch_actor

logger = logging.getLogger(__name__)

AGENT_ENV_PATTERN = re.compile(r"^HANDOFF_AGENT_(?P<key>[A-Z0-9_]+?)_(?P<field>NAME|PHONE|ORGANIZATIONS)$")

ESCALATION_FAILED_TEXT = (
    "Desculpe, não consegui encaminhar seu atendimento agora. 😔 "
    "Por favor, tente novamente mais tarde. O atendimento será encerrado."
)
NO_AGENT_TEXT = (
    "No momento não há atendentes disponíveis para {organization}. "
    "Por favor, entre em contato diretamente com a coordenação da sua instituição. "
    "O atendimento será encerrado."
)
CONFIRMATION_TEXT = (
    "Pronto! ✅ Seu atendimento foi encaminhado para {agent_name}, que vai continuar a conversa "
    "pelo WhatsApp {agent_phone}. Você é o número {position} da fila. O atendimento automático será encerrado."
)


@dataclass
class HandoffAgent:
    name: str
    phone: str
    organizations: List[str] = field(default_factory=list)


@dataclass
class Ticket:
    actor_phone: Optional[str]
    actor_name: str
    organization: str
    conversation_summary: str
    full_profile: Dict[str, Any]
    id: str = ""
    agent_name: Optional[str] = None
    agent_phone: Optional[str] = None
    position: int = 0
    created_at: str = ""


def _org_key(organization: str) -> str:
    return " ".join((organization or "").split()).casefold()


class InMemoryAgentDirectory:
    def __init__(self, agents: Optional[List[HandoffAgent]] = None):
        self._by_organization: Dict[str, HandoffAgent] = {}
        self._lock = threading.RLock()
        for agent in agents or []:
            self.upsert(agent)

    def lookup(self, organization: str) -> Optional[HandoffAgent]:
        with self._lock:
            return self._by_organization.get(_org_key(organization))

    def upsert(self, agent: HandoffAgent) -> None:
        with self._lock:
            for organization in agent.organizations:
                self._by_organization[_org_key(organization)] = agent
        logger.info(f"Handoff agent {agent.name} serves {', '.join(agent.organizations)}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InMemoryAgentDirectory":
        """
        Loads agents from HANDOFF_AGENT_<KEY>_NAME / _PHONE / _ORGANIZATIONS.

        ORGANIZATIONS is a comma separated list; incomplete entries are skipped.
        """
        environ = os.environ if environ is None else environ
        entries: Dict[str, Dict[str, str]] = defaultdict(dict)
        for name, value in environ.items():
            match = AGENT_ENV_PATTERN.match(name)
            if match:
                entries[match.group("key")][match.group("field")] = value

        agents = []
        for key, values in sorted(entries.items()):
            if not all(values.get(f) for f in ("NAME", "PHONE", "ORGANIZATIONS")):
                logger.warning(f"Incomplete handoff agent configuration for {key}, skipping")
                continue
            organizations = [o.strip() for o in values["ORGANIZATIONS"].split(",") if o.strip()]
            agents.append(HandoffAgent(values["NAME"], values["PHONE"], organizations))
        return cls(agents)


class InMemoryNotificationSink:
    """Ticket queues per organization."""

    def __init__(self):
        self._queues: Dict[str, List[Ticket]] = defaultdict(list)
        self._lock = threading.RLock()

    def send_ticket(self, ticket: Ticket) -> str:
        with self._lock:
            queue = self._queues[_org_key(ticket.organization)]
            ticket.id = str(uuid.uuid4())
            ticket.position = len(queue) + 1
            ticket.created_at = datetime.now().isoformat()
            queue.append(ticket)
        logger.info(f"Ticket {ticket.id} queued for {ticket.organization} at position {ticket.position}")
        return ticket.id

    def queue(self, organization: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(t) for t in self._queues.get(_org_key(organization), [])]


class HandoffService:
    def __init__(self, backend, directory: InMemoryAgentDirectory, sink: InMemoryNotificationSink, summarizer: SummaryService):
        self.backend = backend
        self.directory = directory
        self.sink = sink
        self.summarizer = summarizer

    async def escalate(self, role: ActorRole, cpf: str, phone: Optional[str], reason: str) -> str:
        """
        Hands the conversation to a human agent of the actor's organization.

        Always returns the text to show; the caller ends the conversation
        whatever the outcome.
        """
        try:
            actor: Actor = await fetch_actor(self.backend, cpf, role)
        except DomainBackendError as e:
            logger.error(f"Error fetching escalation data for CPF {cpf}: {e}")
            return ESCALATION_FAILED_TEXT

        organization = actor.organization
        agent = self.directory.lookup(organization) if organization else None
        if agent is None:
            logger.warning(f"No handoff agent configured for organization {organization!r}")
            return NO_AGENT_TEXT.format(organization=organization or "sua instituição")

        summary = await self.summarizer.summarize(actor, reason, phone or actor.phone)
        ticket = Ticket(
            actor_phone=phone or actor.phone,
            actor_name=actor.name,
            organization=organization,
            conversation_summary=summary,
            full_profile=actor.model_dump(mode="json"),
            agent_name=agent.name,
            agent_phone=agent.phone,
        )
        self.sink.send_ticket(ticket)
        return CONFIRMATION_TEXT.format(agent_name=agent.name, agent_phone=agent.phone, position=ticket.position)
