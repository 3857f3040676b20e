import asyncio

import pytest
from fakes import ScriptedChatModel
from langchain_core.messages import AIMessage

from rade_bot.src.graph import hybrid_flow as hf
from rade_bot.src.graph import menu_flow as mf
from rade_bot.src.graph.hybrid_flow import HybridFlow
from rade_bot.src.graph.menu_flow import HYBRID_MENUS, MenuFlow
from rade_bot.src.graph.open_flow import OpenFlow
from rade_bot.src.graph.state import HybridFlowState, HybridState
from rade_bot.src.models.chat_models import ActorRole
from rade_bot.src.services.handoff_service import HandoffService, InMemoryAgentDirectory, InMemoryNotificationSink
from rade_bot.src.services.summary_service import SummaryService

MARIA = {"cpf": "98765432100", "name": "Maria Clara Souza", "phone": "11999999999"}
DANIELA = {"cpf": "11111111111", "name": "Prof. Daniela Moura", "phone": "41991112233"}


@pytest.fixture
def primary():
    return ScriptedChatModel(responses=[AIMessage(content="Você tem uma atividade agendada.")])


@pytest.fixture
def flow(backend, make_ai_service, primary):
    handoff = HandoffService(backend, InMemoryAgentDirectory(), InMemoryNotificationSink(), SummaryService())
    menu = MenuFlow(backend, handoff, True, HYBRID_MENUS)
    return HybridFlow(menu, OpenFlow(backend, make_ai_service(primary), test_mode=True))


def turn(flow, message, state):
    return asyncio.run(flow.handle(message, state))


def test_start_uses_hybrid_states(flow):
    result = turn(flow, "oi", None)

    assert result.response == mf.PROFILE_PROMPT
    assert result.next_state == HybridFlowState(HybridState.AWAITING_USER_TYPE, {})


def test_identity_check_leads_to_menu_with_assistant_option(flow):
    asked = turn(flow, "98765432100", HybridFlowState(HybridState.AWAITING_STUDENT_CPF))
    menu = turn(flow, "(11) 99999-9999", asked.next_state)

    assert asked.next_state.current_state == HybridState.AWAITING_STUDENT_PHONE
    assert menu.next_state.current_state == HybridState.AWAITING_STUDENT_MENU_CHOICE
    assert "7 - Conversar com o Assistente Virtual" in menu.response
    assert "9 - Encerrar atendimento" in menu.response


def test_student_talks_to_the_assistant_and_goes_back(flow, primary):
    menu = HybridFlowState(HybridState.AWAITING_STUDENT_MENU_CHOICE, MARIA)

    greeted = turn(flow, "7", menu)
    answered = turn(flow, "tenho atividades hoje?", greeted.next_state)
    back = turn(flow, "voltar", answered.next_state)

    assert greeted.response == hf.AI_GREETING
    assert greeted.next_state.current_state == HybridState.AI_CHAT
    assert greeted.next_state.data["role"] == "student"

    assert answered.response == "Você tem uma atividade agendada."
    assert answered.next_state.current_state == HybridState.AI_CHAT
    assert len(answered.next_state.data["conversation_history"]) == 2
    assert primary.prompts[-1][-1].content == "tenho atividades hoje?"

    assert back.next_state.current_state == HybridState.AWAITING_STUDENT_MENU_CHOICE
    assert "conversation_history" not in back.next_state.data
    assert back.next_state.data["cpf"] == "98765432100"
    assert back.response == mf.menu_text(ActorRole.STUDENT, "Maria Clara Souza", HYBRID_MENUS)


def test_coordinator_menu_numbering(flow):
    menu = HybridFlowState(HybridState.AWAITING_COORDINATOR_MENU_CHOICE, DANIELA)

    assert turn(flow, "5", menu).next_state.data["role"] == "coordinator"
    assert turn(flow, "6", menu).response == mf.PROFILE_PROMPT
    assert turn(flow, "7", menu).next_state.current_state == HybridState.END
    assert "RkjrtSsEDP8" in turn(flow, "2", menu).response


def test_student_back_option_moves_past_the_assistant(flow):
    menu = HybridFlowState(HybridState.AWAITING_STUDENT_MENU_CHOICE, MARIA)

    assert turn(flow, "8", menu).response == mf.PROFILE_PROMPT
    assert turn(flow, "9", menu).next_state == HybridFlowState(HybridState.END, {})


def test_exit_command_ends_the_assistant_chat(flow):
    state = HybridFlowState(HybridState.AI_CHAT, dict(MARIA, role="student", conversation_history=[]))

    result = turn(flow, "sair", state)

    assert result.next_state == HybridFlowState(HybridState.END, {})


def test_role_not_held_by_the_cpf_restarts(flow, primary):
    state = HybridFlowState(HybridState.AI_CHAT, dict(MARIA, role="coordinator", conversation_history=[]))

    result = turn(flow, "quais estudantes eu supervisiono?", state)

    assert result.response == mf.PROFILE_PROMPT
    assert result.next_state.current_state == HybridState.AWAITING_USER_TYPE
    assert primary.prompts == []
