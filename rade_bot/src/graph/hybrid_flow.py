"""
Hybrid chat: the menu flow with an extra option on each role menu that hands
the conversation to the AI assistant.

Menu turns are delegated to MenuFlow and AI turns to OpenFlow; this module
only maps states between them. The identity confirmed by the menu (CPF and,
when required, phone) is what the AI conversation runs under.
"""

import logging
from typing import Optional

from rade_bot.src.graph.menu_flow import HYBRID_MENUS, MenuFlow, menu_text
from rade_bot.src.graph.open_flow import OpenFlow
from rade_bot.src.graph.state import (
    FlowResponse,
    HybridFlowState,
    HybridState,
    MenuFlowState,
    MenuState,
    OpenFlowState,
    OpenState,
)
from rade_bot.src.models.chat_models import ActorHint, ActorRole, ChatEnvironment

logger = logging.getLogger(__name__)

AI_GREETING = (
    "Certo! Agora você está conversando com o assistente virtual da RADE. 🤖\n"
    "Pode me perguntar sobre suas atividades, profissionais e contatos.\n\n"
    "Digite \"voltar\" para retornar ao menu ou \"sair\" para encerrar."
)
BACK_COMMANDS = {"voltar", "menu"}

MENU_CHOICE_STATES = {
    HybridState.AWAITING_STUDENT_MENU_CHOICE: ActorRole.STUDENT,
    HybridState.AWAITING_COORDINATOR_MENU_CHOICE: ActorRole.COORDINATOR,
}


def to_menu_state(state: Optional[HybridFlowState]) -> Optional[MenuFlowState]:
    if state is None:
        return None
    return MenuFlowState(MenuState(state.current_state.value), state.data)


def from_menu_state(state: MenuFlowState) -> HybridFlowState:
    return HybridFlowState(HybridState(state.current_state.value), state.data)


class HybridFlow:
    def __init__(self, menu_flow: MenuFlow, open_flow: OpenFlow):
        self.menu_flow = menu_flow
        self.open_flow = open_flow

    async def handle(
        self,
        message: str,
        state: Optional[HybridFlowState],
        environment: ChatEnvironment = ChatEnvironment.WEB,
        actor_hint: Optional[ActorHint] = None,
    ) -> FlowResponse:
        if state is not None and state.current_state == HybridState.AI_CHAT:
            return await self.handle_ai_chat(message, state)

        if state is not None and state.current_state in MENU_CHOICE_STATES:
            role = MENU_CHOICE_STATES[state.current_state]
            if message.strip() == HYBRID_MENUS[role].ai_option:
                return self.start_ai_chat(state, role)

        result = await self.menu_flow.handle(message, to_menu_state(state), environment, actor_hint)
        return FlowResponse(result.response, from_menu_state(result.next_state))

    def start_ai_chat(self, state: HybridFlowState, role: ActorRole) -> FlowResponse:
        logger.info(f"Hybrid chat handing CPF {state.data.get('cpf')} to the AI assistant as {role.value}")
        next_state = state.evolve(HybridState.AI_CHAT, role=role.value, conversation_history=[])
        return FlowResponse(AI_GREETING, next_state)

    async def handle_ai_chat(self, message: str, state: HybridFlowState) -> FlowResponse:
        if message.strip().lower() in BACK_COMMANDS:
            return self.back_to_menu(state)

        result = await self.open_flow.handle_question(message, OpenFlowState(OpenState.AUTHENTICATED, state.data))
        current = result.next_state.current_state
        if current == OpenState.AUTHENTICATED:
            return FlowResponse(result.response, HybridFlowState(HybridState.AI_CHAT, result.next_state.data))
        if current == OpenState.END:
            return FlowResponse(result.response, HybridFlowState(HybridState.END, {}))

        # the stored identity no longer resolves
        return self._restart()

    def back_to_menu(self, state: HybridFlowState) -> FlowResponse:
        try:
            role = ActorRole(state.data.get("role"))
        except ValueError:
            return self._restart()
        data = {k: v for k, v in state.data.items() if k != "conversation_history"}
        next_state = HybridFlowState(HybridState(HYBRID_MENUS[role].menu_state.value), data)
        return FlowResponse(menu_text(role, data.get("name"), HYBRID_MENUS), next_state)

    def _restart(self) -> FlowResponse:
        result = self.menu_flow.start()
        return FlowResponse(result.response, from_menu_state(result.next_state))
