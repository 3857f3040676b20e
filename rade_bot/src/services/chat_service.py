import logging
from typing import Optional, Type

from rade_bot.src.graph.hybrid_flow import HybridFlow
from rade_bot.src.graph.menu_flow import MenuFlow
from rade_bot.src.graph.open_flow import OpenFlow
from rade_bot.src.graph.state import ConversationState, HybridFlowState, MenuFlowState, OpenFlowState
from rade_bot.src.models.chat_models import ChatRequest, ChatResponse, ConversationStateModel

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "Desculpe, ocorreu um erro ao processar sua mensagem. 😔 Por favor, tente novamente."


def parse_state(state_cls: Type[ConversationState], raw: Optional[ConversationStateModel]) -> Optional[ConversationState]:
    if raw is None:
        return None
    state = state_cls.from_raw(raw.current_state, raw.data)
    if state is None:
        logger.warning(f"Unknown conversation state {raw.current_state!r}, restarting the flow")
    return state


def to_state_model(state: ConversationState) -> ConversationStateModel:
    return ConversationStateModel(**state.to_dict())


class ChatService:
    """Runs one turn of the menu, open or hybrid chat and builds the HTTP response."""

    def __init__(self, menu_flow: MenuFlow, open_flow: OpenFlow, hybrid_flow: HybridFlow):
        self.menu_flow = menu_flow
        self.open_flow = open_flow
        self.hybrid_flow = hybrid_flow

    async def menu_turn(self, request: ChatRequest) -> ChatResponse:
        return await self._turn(self.menu_flow, MenuFlowState, request)

    async def open_turn(self, request: ChatRequest) -> ChatResponse:
        return await self._turn(self.open_flow, OpenFlowState, request)

    async def hybrid_turn(self, request: ChatRequest) -> ChatResponse:
        return await self._turn(self.hybrid_flow, HybridFlowState, request)

    async def _turn(self, flow, state_cls: Type[ConversationState], request: ChatRequest) -> ChatResponse:
        state = parse_state(state_cls, request.state)
        try:
            result = await flow.handle(request.message or "", state, request.environment, request.actor_hint)
        except Exception as e:
            logger.exception(f"Error processing {state_cls.__name__} turn: {e}")
            previous = state or state_cls.initial()
            return ChatResponse(
                response=APOLOGY_TEXT,
                success=False,
                error=type(e).__name__,
                next_state=to_state_model(previous),
            )

        return ChatResponse(response=result.response, success=True, next_state=to_state_model(result.next_state))
