from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Type, TypedDict

from langgraph.graph.message import add_messages


class ToolLoopState(TypedDict):
    """State of one model run through the agent/tools loop."""
    # conversation messages
    messages: Annotated[List, add_messages]
    # agent node executions so far
    steps: int


class MenuState(str, Enum):
    START = "START"
    AWAITING_USER_TYPE = "AWAITING_USER_TYPE"
    AWAITING_STUDENT_CPF = "AWAITING_STUDENT_CPF"
    AWAITING_COORDINATOR_CPF = "AWAITING_COORDINATOR_CPF"
    AWAITING_NEW_USER_DETAILS = "AWAITING_NEW_USER_DETAILS"
    AWAITING_STUDENT_PHONE = "AWAITING_STUDENT_PHONE"
    AWAITING_COORDINATOR_PHONE = "AWAITING_COORDINATOR_PHONE"
    AWAITING_STUDENT_MENU_CHOICE = "AWAITING_STUDENT_MENU_CHOICE"
    AWAITING_COORDINATOR_MENU_CHOICE = "AWAITING_COORDINATOR_MENU_CHOICE"
    AWAITING_STUDENT_HELP_CHOICE = "AWAITING_STUDENT_HELP_CHOICE"
    AWAITING_COORDINATOR_HELP_CHOICE = "AWAITING_COORDINATOR_HELP_CHOICE"
    END = "END"


class HybridState(str, Enum):
    """Menu states plus the AI conversation reached from a role menu."""
    START = "START"
    AWAITING_USER_TYPE = "AWAITING_USER_TYPE"
    AWAITING_STUDENT_CPF = "AWAITING_STUDENT_CPF"
    AWAITING_COORDINATOR_CPF = "AWAITING_COORDINATOR_CPF"
    AWAITING_NEW_USER_DETAILS = "AWAITING_NEW_USER_DETAILS"
    AWAITING_STUDENT_PHONE = "AWAITING_STUDENT_PHONE"
    AWAITING_COORDINATOR_PHONE = "AWAITING_COORDINATOR_PHONE"
    AWAITING_STUDENT_MENU_CHOICE = "AWAITING_STUDENT_MENU_CHOICE"
    AWAITING_COORDINATOR_MENU_CHOICE = "AWAITING_COORDINATOR_MENU_CHOICE"
    AWAITING_STUDENT_HELP_CHOICE = "AWAITING_STUDENT_HELP_CHOICE"
    AWAITING_COORDINATOR_HELP_CHOICE = "AWAITING_COORDINATOR_HELP_CHOICE"
    AI_CHAT = "AI_CHAT"
    END = "END"


class OpenState(str, Enum):
    START = "START"
    AWAITING_CPF = "AWAITING_CPF"
    AWAITING_PHONE = "AWAITING_PHONE"
    AUTHENTICATED = "AUTHENTICATED"
    END = "END"


@dataclass(frozen=True)
class ConversationState:
    """
    Position of a conversation plus the facts learned so far.

    Instances are never mutated: `evolve` returns a new state layering the
    updates over the previous data.
    """

    current_state: Enum
    data: Dict[str, Any] = field(default_factory=dict)

    states: ClassVar[Type[Enum]] = None

    def evolve(self, current_state: Optional[Enum] = None, reset: bool = False, **updates) -> "ConversationState":
        data = {} if reset else dict(self.data)
        data.update(updates)
        return type(self)(current_state or self.current_state, data)

    def to_dict(self) -> Dict[str, Any]:
        return {"current_state": self.current_state.value, "data": dict(self.data)}

    @classmethod
    def initial(cls) -> "ConversationState":
        return cls(cls.states.START, {})

    @classmethod
    def from_raw(cls, current_state: Optional[str], data: Optional[Dict[str, Any]] = None) -> Optional["ConversationState"]:
        """Validates only the discriminant; None means the flow must restart."""
        try:
            state = cls.states(current_state)
        except ValueError:
            return None
        return cls(state, dict(data or {}))


@dataclass(frozen=True)
class MenuFlowState(ConversationState):
    states = MenuState


@dataclass(frozen=True)
class OpenFlowState(ConversationState):
    states = OpenState


@dataclass(frozen=True)
class HybridFlowState(ConversationState):
    states = HybridState


@dataclass(frozen=True)
class FlowResponse:
    response: str
    next_state: ConversationState
