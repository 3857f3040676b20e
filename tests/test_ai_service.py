import asyncio

import pytest
from fakes import OverloadedError, ScriptedChatModel, tool_call
from langchain_core.messages import AIMessage, HumanMessage

from rade_bot.src.llm.history import load_history
from rade_bot.src.llm.prompts import FORMAT_ANSWER_INSTRUCTION
from rade_bot.src.llm.tools import tool_names_for
from rade_bot.src.models.chat_models import ActorRole
from rade_bot.src.services.ai_service import NO_ANSWER_TEXT, OVERLOADED_TEXT

STUDENT_TOOLS = tool_names_for(ActorRole.STUDENT)


def run_turn(service, actor, message, history=None):
    return asyncio.run(service.process_tool_call(actor, message, STUDENT_TOOLS, history=history))


def test_plain_answer_in_one_run(make_ai_service, maria, metrics):
    primary = ScriptedChatModel(responses=[AIMessage(content="Olá, Maria! Como posso ajudar?")])

    result = run_turn(make_ai_service(primary), maria, "oi")

    assert result.text == "Olá, Maria! Como posso ajudar?"
    assert result.model_calls == 1
    assert not result.used_fallback
    assert [type(m) for m in result.messages] == [HumanMessage, AIMessage]
    assert metrics.summary()["total_requests"] == 1


def test_empty_answer_after_tools_is_recovered_and_synthesized(make_ai_service, maria):
    primary = ScriptedChatModel(
        responses=[
            tool_call("get_students_scheduled_activities", "call_1"),
            AIMessage(content=""),
        ]
    )

    result = run_turn(make_ai_service(primary), maria, "quais são minhas atividades?")

    assert result.model_calls == 2
    assert "Consulta Pediátrica Supervisionada" in result.text
    assert result.tools_used == ["get_students_scheduled_activities"]
    # the recovery instruction is sent but never stored
    assert primary.prompts[-1][-1].content == FORMAT_ANSWER_INSTRUCTION
    assert all(m.content != FORMAT_ANSWER_INSTRUCTION for m in result.messages)
    assert isinstance(result.messages[-1], AIMessage)
    assert result.messages[-1].content == result.text


def test_report_request_forces_report_tool_on_third_run(make_ai_service, maria):
    primary = ScriptedChatModel(
        responses=[
            tool_call("get_students_scheduled_activities", "call_1"),
            AIMessage(content=""),
            tool_call("get_students_scheduled_activities", "call_2"),
            AIMessage(content=""),
            tool_call("generate_report", "call_3", format="csv"),
            AIMessage(content=""),
        ]
    )

    result = run_turn(make_ai_service(primary), maria, "gere um relatório csv das minhas atividades")

    assert result.model_calls == 3
    assert primary.bind_calls == [{}, {}, {}, {}, {"tool_choice": "generate_report"}, {}]
    assert "✅ Relatório gerado!" in result.text
    assert "/csv" in result.text


def test_tool_steps_are_bounded_per_run(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[tool_call("get_student_info", "call_1")])

    result = run_turn(make_ai_service(primary), maria, "meus dados")

    assert result.model_calls == 2
    assert len(primary.prompts) == 6
    assert "Maria Clara Souza" in result.text
    # six identical tool calls, one profile section
    assert result.text.count("📋 Seus dados:") == 1
    assert result.tools_used == ["get_student_info"]


def test_leaked_tool_code_counts_as_no_answer(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[AIMessage(content="tool_code\nprint(default_api.get_student_info())")])

    result = run_turn(make_ai_service(primary), maria, "meus dados")

    assert result.text == NO_ANSWER_TEXT
    assert result.model_calls == 1


def test_overloaded_primary_switches_to_fallback(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[OverloadedError("503 Service Unavailable")])
    fallback = ScriptedChatModel(responses=[AIMessage(content="Resposta do modelo reserva")])

    result = run_turn(make_ai_service(primary, fallback), maria, "oi")

    assert result.text == "Resposta do modelo reserva"
    assert result.used_fallback


def test_both_tiers_overloaded_answers_try_later(make_ai_service, maria, metrics):
    primary = ScriptedChatModel(responses=[OverloadedError("overloaded")])
    fallback = ScriptedChatModel(responses=[OverloadedError("overloaded")])

    result = run_turn(make_ai_service(primary, fallback), maria, "oi")

    assert result.text == OVERLOADED_TEXT
    assert result.used_fallback
    assert metrics.summary()["fallback_rate"] == 100


def test_overload_after_tools_answers_from_tool_results(make_ai_service, maria, cache):
    primary = ScriptedChatModel(
        responses=[tool_call("get_students_scheduled_activities", "call_1"), OverloadedError("overloaded")]
    )
    fallback = ScriptedChatModel(responses=[OverloadedError("overloaded")])

    result = run_turn(make_ai_service(primary, fallback), maria, "quais são minhas atividades?")

    assert result.text != OVERLOADED_TEXT
    assert "Consulta Pediátrica Supervisionada" in result.text
    assert result.tools_used == ["get_students_scheduled_activities"]
    assert result.used_fallback
    assert result.messages[-1].content == result.text
    cached = load_history(cache.get(f"conversation_{maria.cpf}"))
    assert cached[-1].content == result.text


def test_model_error_after_tools_answers_from_tool_results(make_ai_service, maria):
    primary = ScriptedChatModel(
        responses=[tool_call("get_students_scheduled_activities", "call_1"), ValueError("invalid request")]
    )

    result = run_turn(make_ai_service(primary), maria, "quais são minhas atividades?")

    assert "Consulta Pediátrica Supervisionada" in result.text


def test_other_model_errors_propagate(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[ValueError("invalid request")])
    fallback = ScriptedChatModel(responses=[AIMessage(content="nunca")])

    with pytest.raises(ValueError):
        run_turn(make_ai_service(primary, fallback), maria, "oi")

    assert fallback.prompts == []


def test_missing_primary_model_is_an_error(make_ai_service, maria):
    with pytest.raises(RuntimeError):
        run_turn(make_ai_service(None), maria, "oi")


def test_history_is_cached_between_turns(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[AIMessage(content="Olá!"), AIMessage(content="Tudo ótimo.")])
    service = make_ai_service(primary)

    run_turn(service, maria, "oi")
    run_turn(service, maria, "tudo bem?")

    contents = [m.content for m in primary.prompts[-1]]
    assert contents[1:] == ["oi", "Olá!", "tudo bem?"]


def test_history_from_caller_wins_over_cache(make_ai_service, maria):
    primary = ScriptedChatModel(responses=[AIMessage(content="Certo.")])
    service = make_ai_service(primary)
    run_turn(service, maria, "primeira conversa")

    run_turn(service, maria, "nova conversa", history=[])

    contents = [m.content for m in primary.prompts[-1]]
    assert contents[1:] == ["nova conversa"]
