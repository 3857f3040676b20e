"""
Deterministic answers built straight from tool results.

Used when the model ran tools but never produced text. Each tool result is
classified into a variant and rendered by the matching formatter; the whole
thing never raises.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)

GENERIC_SUCCESS_TEXT = "Dados obtidos com sucesso! Como posso ajudá-lo?"
NOT_AVAILABLE = "Não disponível"
# Brasília time, no daylight saving since 2019
BRAZIL_TZ = timezone(timedelta(hours=-3))

TOOL_VARIANTS = {
    "get_students_scheduled_activities": "scheduled_activities",
    "get_coordinators_ongoing_activities": "ongoing_activities",
    "get_students_professionals": "people_list",
    "get_coordinators_professionals": "people_list",
    "get_coordinators_students": "people_list",
    "get_student_info": "profile",
    "get_coordinator_info": "profile",
    "find_person_by_name": "person",
    "generate_report": "report",
}

LIST_LABELS = {
    "get_students_scheduled_activities": "atividades agendadas",
    "get_coordinators_ongoing_activities": "atividades em andamento",
    "get_students_professionals": "preceptores",
    "get_coordinators_professionals": "profissionais supervisionados",
    "get_coordinators_students": "estudantes supervisionados",
}


def _tool_name(tool_result: Any) -> str:
    if isinstance(tool_result, dict):
        return tool_result.get("tool_name", "")
    return getattr(tool_result, "tool_name", "")


def _payload(tool_result: Any) -> Any:
    if isinstance(tool_result, dict):
        return tool_result.get("result")
    return getattr(tool_result, "result", None)


def classify(tool_name: str, result: Any) -> str:
    if isinstance(result, dict) and result.get("error"):
        return "person_suggestion" if result.get("suggestion") else "error"
    return TOOL_VARIANTS.get(tool_name, "generic")


def format_datetime(value: str) -> tuple:
    """ISO timestamp -> ('dd/mm/aaaa', 'HH:MM') in Brasília time."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    local = parsed.astimezone(BRAZIL_TZ)
    return local.strftime("%d/%m/%Y"), local.strftime("%H:%M")


def _period(start: str, end: str) -> str:
    day, start_time = format_datetime(start)
    _, end_time = format_datetime(end)
    return f"{day}, {start_time}-{end_time}"


def _or_na(value: Any) -> str:
    return str(value) if value else NOT_AVAILABLE


def _list_guard(items: List[Any], tool_name: str, threshold: int):
    label = LIST_LABELS.get(tool_name, "registros")
    if not items:
        return f"Não encontrei registros de {label}."
    if len(items) > threshold:
        return (
            f"Encontrei {len(items)} registros de {label}. É uma lista grande para mostrar aqui; "
            "posso gerar um relatório em CSV ou TXT para download. Deseja?"
        )
    return None


def _scheduled_activities(result: Any, tool_name: str, threshold: int) -> str:
    items = list(result or [])
    guard = _list_guard(items, tool_name, threshold)
    if guard:
        return guard
    lines = [f"📅 Suas atividades agendadas ({len(items)}):"]
    for index, activity in enumerate(items, start=1):
        preceptors = ", ".join(activity.get("preceptorNames") or []) or NOT_AVAILABLE
        lines.append(
            f"{index}. {activity.get('taskName')} - {activity.get('internshipLocationName')}\n"
            f"   🗓️ {_period(activity['scheduledStartTo'], activity['scheduledEndTo'])}\n"
            f"   👥 {activity.get('groupName')}\n"
            f"   🩺 Preceptores: {preceptors}"
        )
    return "\n".join(lines)


def _ongoing_activities(result: Any, tool_name: str, threshold: int) -> str:
    items = list(result or [])
    guard = _list_guard(items, tool_name, threshold)
    if guard:
        return guard
    lines = [f"▶️ Atividades em andamento ({len(items)}):"]
    for index, activity in enumerate(items, start=1):
        _, started = format_datetime(activity.get("startedAt") or activity["scheduledStartTo"])
        day, _ = format_datetime(activity["scheduledStartTo"])
        _, end = format_datetime(activity["scheduledEndTo"])
        lines.append(
            f"{index}. {activity.get('studentName')} - {activity.get('taskName')}\n"
            f"   📍 {activity.get('internshipLocationName')} ({day}, início {started}, término previsto {end})\n"
            f"   🩺 Preceptor: {_or_na(activity.get('preceptorName'))}"
        )
    return "\n".join(lines)


def _people_list(result: Any, tool_name: str, threshold: int) -> str:
    items = list(result or [])
    guard = _list_guard(items, tool_name, threshold)
    if guard:
        return guard
    label = LIST_LABELS.get(tool_name, "pessoas")
    lines = [f"👥 {label.capitalize()} ({len(items)}):"]
    for index, person in enumerate(items, start=1):
        groups = ", ".join(person.get("groupNames") or []) or NOT_AVAILABLE
        lines.append(
            f"{index}. {person.get('name')}\n"
            f"   📧 {_or_na(person.get('email'))} | 📱 {_or_na(person.get('phone'))}\n"
            f"   👥 {groups}"
        )
    return "\n".join(lines)


def _profile(result: Any, tool_name: str, threshold: int) -> str:
    prefix = "student" if "studentName" in result else "coordinator"
    organizations = result.get("organizationsAndCourses") or []
    institutions = "; ".join(
        f"{org.get('organizationName')} ({', '.join(org.get('courseNames') or [])})"
        for org in organizations
    )
    return (
        "📋 Seus dados:\n"
        f"• Nome: {_or_na(result.get(prefix + 'Name'))}\n"
        f"• Email: {_or_na(result.get(prefix + 'Email'))}\n"
        f"• Telefone: {_or_na(result.get(prefix + 'Phone'))}\n"
        f"• Grupos: {', '.join(result.get('groupNames') or []) or NOT_AVAILABLE}\n"
        f"• Instituição: {institutions or NOT_AVAILABLE}"
    )


def _person_card(person: Dict[str, Any]) -> str:
    groups = ", ".join(person.get("groupNames") or []) or NOT_AVAILABLE
    return (
        f"📋 Dados de {person.get('name')}:\n"
        f"• Email: {_or_na(person.get('email'))}\n"
        f"• Telefone: {_or_na(person.get('phone'))}\n"
        f"• Grupos: {groups}"
    )


def _person(result: Any, tool_name: str, threshold: int) -> str:
    return _person_card(result)


def _person_suggestion(result: Any, tool_name: str, threshold: int) -> str:
    suggestion = result["suggestion"]
    return f"{result['error']} Você quis dizer {suggestion.get('name')}?\n\n{_person_card(suggestion)}"


def _report(result: Any, tool_name: str, threshold: int) -> str:
    return f"✅ Relatório gerado! Link para download: {result['downloadUrl']}"


def _error(result: Any, tool_name: str, threshold: int) -> str:
    if tool_name == "generate_report":
        return f"❌ Erro ao gerar relatório: {result['error']}"
    return str(result["error"])


def _generic(result: Any, tool_name: str, threshold: int) -> str:
    if isinstance(result, list):
        return f"Encontrei {len(result)} registros." if result else "Não encontrei registros."
    if isinstance(result, dict):
        return " | ".join(f"{key}: {value}" for key, value in list(result.items())[:4] if key != "cpf")
    return str(result)


FORMATTERS: Dict[str, Callable[[Any, str, int], str]] = {
    "scheduled_activities": _scheduled_activities,
    "ongoing_activities": _ongoing_activities,
    "people_list": _people_list,
    "profile": _profile,
    "person": _person,
    "person_suggestion": _person_suggestion,
    "report": _report,
    "error": _error,
    "generic": _generic,
}


def distinct_results(tool_results: Iterable[Any]) -> List[Any]:
    """Drops repeated calls: same tool and structurally equal payload, first one kept."""
    seen = set()
    distinct = []
    for tool_result in tool_results:
        key = (_tool_name(tool_result), json.dumps(_payload(tool_result), sort_keys=True, default=str))
        if key in seen:
            continue
        seen.add(key)
        distinct.append(tool_result)
    return distinct


def synthesize_answer(tool_results: Iterable[Any], threshold: int = 20) -> str:
    """
    Renders a human-readable answer from the raw tool results of a turn.

    Args:
        tool_results: Items exposing `tool_name` and `result` (objects or dicts).
        threshold: Lists longer than this become a count plus a report offer.

    Returns:
        The answer text. Falls back to a generic success message on any error.
    """
    try:
        sections = []
        for tool_result in distinct_results(tool_results):
            name, payload = _tool_name(tool_result), _payload(tool_result)
            variant = classify(name, payload)
            sections.append(FORMATTERS[variant](payload, name, threshold))
        text = "\n\n".join(s for s in sections if s)
        return text or GENERIC_SUCCESS_TEXT
    except Exception as e:
        logger.error(f"Error building fallback answer from tool results: {e}")
        return GENERIC_SUCCESS_TEXT
