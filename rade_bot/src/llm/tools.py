import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from rade_bot.src.core.cache import ExpiringCache
from rade_bot.src.models.chat_models import Actor, ActorRole
from rade_bot.src.services.domain_client import DomainBackendError, only_digits
from rade_bot.src.services.person_matcher import (
    match_person,
    normalize_name,
    person_identity_key,
    to_person_card,
)
from rade_bot.src.services.report_service import (
    ReportService,
    combine_items,
    filter_fields,
    report_title,
)

logger = logging.getLogger(__name__)

STUDENT_TOOLS = [
    "get_student_info",
    "get_students_scheduled_activities",
    "get_students_professionals",
]
COORDINATOR_TOOLS = [
    "get_coordinator_info",
    "get_coordinators_ongoing_activities",
    "get_coordinators_professionals",
    "get_coordinators_students",
]
SEARCH_TOOL = "find_person_by_name"
REPORT_TOOL = "generate_report"

PERSON_LIST_TOOLS = {
    "get_students_professionals",
    "get_coordinators_professionals",
    "get_coordinators_students",
}

NO_REPORT_DATA_ERROR = "Não encontrei dados para gerar um relatório. Por favor, faça uma busca primeiro."


class CpfArgs(BaseModel):
    cpf: Optional[str] = Field(
        default=None,
        description="CPF (11 digits) of the person being queried. Defaults to the logged user.",
    )


class FindPersonArgs(BaseModel):
    name: str = Field(description='Name of the person, e.g. "João Silva" or "Dra. Ana".')
    cpf: Optional[str] = Field(default=None, description="CPF of the logged user doing the search.")


class ReportArgs(BaseModel):
    format: Literal["csv", "txt", "pdf"] = Field(
        default="txt",
        description="File format: csv or txt (pdf requests are delivered as txt).",
    )
    fields_requested: Optional[str] = Field(
        default=None,
        description=(
            "If the user names specific fields (e.g. 'apenas nome e telefone'), list them separated by commas "
            "(e.g. 'nome, telefone'). Leave empty to include every field. Common words: nome, email, telefone, "
            "grupo, curso, instituição."
        ),
    )


TOOL_DESCRIPTIONS = {
    "get_student_info": (
        "Full profile of the student (use for 'meus dados'). "
        "RETURNS: {studentName, studentEmail, studentPhone, groupNames[], "
        "organizationsAndCourses[{organizationName, courseNames[]}]}."
    ),
    "get_students_scheduled_activities": (
        "Upcoming scheduled activities of the student. RETURNS: array of {groupName, taskName, "
        "internshipLocationName, scheduledStartTo, scheduledEndTo, preceptorNames[]} or []."
    ),
    "get_students_professionals": (
        "Preceptors/professors of the student. RETURNS: array of {name, email, phone, groupNames[]} or []."
    ),
    "get_coordinator_info": (
        "Full profile of the coordinator (use for 'meus dados'). RETURNS: {coordinatorName, coordinatorEmail, "
        "coordinatorPhone, groupNames[], organizationsAndCourses[{organizationName, courseNames[]}]}."
    ),
    "get_coordinators_ongoing_activities": (
        "Activities happening right now. RETURNS: array of {studentName, groupName, taskName, "
        "internshipLocationName, scheduledStartTo, scheduledEndTo, startedAt, preceptorName} or []."
    ),
    "get_coordinators_professionals": (
        "Professionals (preceptors) supervised by the coordinator. "
        "RETURNS: array of {name, email, phone, groupNames[]} or []."
    ),
    "get_coordinators_students": (
        "Students supervised by the coordinator (may be 100+ records). "
        "RETURNS: array of {name, email, phone, groupNames[]} or []."
    ),
    SEARCH_TOOL: (
        "Finds a person by name among the people the user can see, tolerating small typos. "
        "RETURNS: {name, email, phone, groupNames[]}, or {error, suggestion} when only a similar name exists, "
        "or {error} when nobody matches."
    ),
    REPORT_TOOL: (
        "MANDATORY when the user asks for 'relatório', 'PDF', 'CSV', 'TXT', 'exportar', 'download' or "
        "'gerar arquivo'. First fetch the data with another tool, then call this one. Builds a downloadable "
        "file from the data obtained by the previous tools. RETURNS: {downloadUrl} or {error}."
    ),
}

ARGS_SCHEMAS = {name: CpfArgs for name in STUDENT_TOOLS + COORDINATOR_TOOLS}
ARGS_SCHEMAS[SEARCH_TOOL] = FindPersonArgs
ARGS_SCHEMAS[REPORT_TOOL] = ReportArgs


def tool_names_for(role: ActorRole, reports_enabled: bool = True) -> List[str]:
    """Role-scoped catalog: coordinator tools are never offered to students."""
    names = [SEARCH_TOOL]
    if reports_enabled:
        names.append(REPORT_TOOL)
    names += STUDENT_TOOLS
    if role == ActorRole.COORDINATOR:
        names += COORDINATOR_TOOLS
    return names


def is_error_result(result: Any) -> bool:
    return isinstance(result, dict) and bool(result.get("error"))


@dataclass
class ToolResult:
    tool_name: str
    result: Any


class ToolExecutor:
    """
    Runs the catalog tools for one actor during one turn.

    Fills in the actor's CPF when the model leaves it out, memoizes backend
    results in the cache, turns backend failures into ``{"error": ...}`` and
    keeps every result of the turn in `results`.
    """

    def __init__(
        self,
        actor: Actor,
        backend,
        cache: ExpiringCache,
        reports: ReportService,
        tool_ttl_ms: int,
    ):
        self.actor = actor
        self.backend = backend
        self.cache = cache
        self.reports = reports
        self.tool_ttl_ms = tool_ttl_ms
        self.results: List[ToolResult] = []
        self.backend_calls = 0
        self.cache_hits = 0

    @property
    def accumulated_key(self) -> str:
        return f"accumulated_{self.actor.cpf}"

    def build_tools(self, tool_names: List[str]) -> List[StructuredTool]:
        return [self._make_tool(name) for name in tool_names]

    def _make_tool(self, name: str) -> StructuredTool:
        async def _run(**kwargs) -> str:
            result = await self.execute(name, **kwargs)
            return json.dumps(result, ensure_ascii=False, default=str)

        return StructuredTool.from_function(
            coroutine=_run,
            name=name,
            description=TOOL_DESCRIPTIONS[name],
            args_schema=ARGS_SCHEMAS[name],
        )

    def _resolve_cpf(self, tool_name: str, requested: Optional[str]) -> str:
        # only coordinators may look at another person's student data
        if self.actor.role != ActorRole.COORDINATOR or tool_name not in STUDENT_TOOLS:
            return self.actor.cpf
        digits = only_digits(requested)
        return digits if len(digits) == 11 else self.actor.cpf

    async def execute(self, tool_name: str, **kwargs) -> Any:
        logger.info(f"Tool called: {tool_name} for CPF {self.actor.cpf}")
        try:
            if tool_name == REPORT_TOOL:
                result = self._generate_report(kwargs.get("format") or "txt", kwargs.get("fields_requested"))
            elif tool_name == SEARCH_TOOL:
                result = await self._find_person(kwargs.get("name") or "")
            elif tool_name in ARGS_SCHEMAS:
                result = await self._fetch(tool_name, self._resolve_cpf(tool_name, kwargs.get("cpf")))
            else:
                result = {"error": f"Ferramenta desconhecida: {tool_name}"}
        except DomainBackendError as e:
            logger.error(f"Error executing {tool_name} for CPF {self.actor.cpf}: {e}")
            result = {"error": str(e)}

        self.results.append(ToolResult(tool_name, result))
        return result

    async def _fetch(self, tool_name: str, cpf: str) -> Any:
        key = f"tool_{tool_name}_{cpf}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Using cached result for {tool_name}")
            self.cache_hits += 1
            self._accumulate(tool_name, cached)
            return cached

        self.backend_calls += 1
        data = await getattr(self.backend, tool_name)(cpf)
        if tool_name in PERSON_LIST_TOOLS:
            data = [to_person_card(person) for person in data]

        self.cache.set(key, data, self.tool_ttl_ms)
        self._accumulate(tool_name, data)
        return data

    async def _roster(self) -> List[Dict[str, Any]]:
        cpf = self.actor.cpf
        self.backend_calls += 1
        if self.actor.role == ActorRole.COORDINATOR:
            professionals = await self.backend.get_coordinators_professionals(cpf)
            self.backend_calls += 1
            students = await self.backend.get_coordinators_students(cpf)
            return list(professionals) + list(students)
        return list(await self.backend.get_students_professionals(cpf))

    async def _find_person(self, name: str) -> Any:
        key = f"tool_{SEARCH_TOOL}_{self.actor.cpf}_{normalize_name(name)}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Using cached result for {SEARCH_TOOL} ({name})")
            self.cache_hits += 1
            if not is_error_result(cached):
                self._accumulate(SEARCH_TOOL, cached)
            return cached

        result = match_person(name, await self._roster())
        self.cache.set(key, result, self.tool_ttl_ms)
        if not is_error_result(result):
            self._accumulate(SEARCH_TOOL, result)
        return result

    def _same_payload(self, item: Dict[str, Any], tool_name: str, data: Any) -> bool:
        if tool_name == SEARCH_TOOL and item["tool_name"] == SEARCH_TOOL:
            return person_identity_key(item["data"]) == person_identity_key(data)
        return item["data"] == data

    def _accumulate(self, tool_name: str, data: Any) -> None:
        accumulated = self.cache.get(self.accumulated_key) or {"items": [], "most_recent": None}
        items = list(accumulated["items"])
        entry = next((item for item in items if self._same_payload(item, tool_name, data)), None)
        if entry is None:
            entry = {"tool_name": tool_name, "timestamp": datetime.now().isoformat(), "data": data}
            items.append(entry)
        self.cache.set(self.accumulated_key, {"items": items, "most_recent": entry}, self.tool_ttl_ms)
        logger.debug(f"Accumulated data for {tool_name}, total items: {len(items)}")

    def accumulated(self) -> Dict[str, Any]:
        return self.cache.get(self.accumulated_key) or {"items": [], "most_recent": None}

    def _generate_report(self, fmt: str, fields_requested: Optional[str]) -> Dict[str, Any]:
        turn_data = [
            r.result for r in self.results
            if r.tool_name != REPORT_TOOL and not is_error_result(r.result)
        ]
        if len(turn_data) == 1:
            data = turn_data[0]
        elif turn_data:
            data = combine_items(turn_data)
        else:
            most_recent = self.accumulated()["most_recent"]
            data = most_recent["data"] if most_recent else None

        if not data:
            return {"error": NO_REPORT_DATA_ERROR}

        data = filter_fields(data, fields_requested)
        report_id = self.reports.create_snapshot(data, report_title(data, fields_requested))
        fmt = "txt" if fmt == "pdf" else fmt
        return {"downloadUrl": self.reports.download_url(report_id, fmt)}
