from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import Field, SQLModel


class ChatEnvironment(str, Enum):
    WEB = "web"
    MOBILE = "mobile"


class ActorRole(str, Enum):
    STUDENT = "student"
    COORDINATOR = "coordinator"


class Actor(SQLModel):
    """Authenticated user on whose behalf tools are executed."""

    cpf: str
    name: str
    role: ActorRole
    phone: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None

    @property
    def role_label(self) -> str:
        return "Coordenador" if self.role == ActorRole.COORDINATOR else "Estudante"


class ActorHint(SQLModel):
    """Identity data supplied by the transport (e.g. the phone of a mobile session)."""

    cpf: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ConversationStateModel(SQLModel):
    """Opaque conversation state round-tripped by the client between turns."""

    current_state: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ChatRequest(SQLModel):
    message: str = ""
    state: Optional[ConversationStateModel] = None
    actor_hint: Optional[ActorHint] = None
    environment: ChatEnvironment = ChatEnvironment.WEB


class ChatResponse(SQLModel):
    response: str
    success: bool
    error: Optional[str] = None
    next_state: ConversationStateModel
