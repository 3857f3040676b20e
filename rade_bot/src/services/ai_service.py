import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from rade_bot.src.config.settings import Settings
from rade_bot.src.core.cache import ExpiringCache
from rade_bot.src.graph.flow import build_tool_graph, run_tool_loop
from rade_bot.src.llm.fallback_text import synthesize_answer
from rade_bot.src.llm.history import dump_history, load_history, trim_history
from rade_bot.src.llm.policy import AttemptPolicy, is_overload_error
from rade_bot.src.llm.prompts import (
    COORDINATOR_SCOPE_PROMPT,
    FORCE_REPORT_INSTRUCTION,
    FORMAT_ANSWER_INSTRUCTION,
    REPORT_PROMPT,
    STUDENT_SCOPE_PROMPT,
    SYSTEM_PROMPT_FINAL_INSTRUCTION,
    SYSTEM_PROMPT_RADE,
)
from rade_bot.src.llm.tools import REPORT_TOOL, ToolExecutor
from rade_bot.src.models.chat_models import Actor, ActorRole
from rade_bot.src.services.metrics_service import ChatMetric, MetricsService, estimate_cost, estimate_tokens
from rade_bot.src.services.report_service import ReportService, detect_requested_format

logger = logging.getLogger(__name__)

OVERLOADED_TEXT = (
    "Nossos serviços de IA estão sobrecarregados no momento. 😕 "
    "Por favor, tente novamente em alguns instantes."
)
NO_ANSWER_TEXT = "Desculpe, não consegui gerar uma resposta. Pode reformular sua pergunta?"

# text the model sometimes prints instead of calling the tool
LEAKED_CODE_MARKERS = ("tool_code", "default_api.", "generate_report(")
REPORT_REQUEST = re.compile(r"relat[óo]rio|pdf|csv|txt|exportar|download", re.IGNORECASE)

EXTRA_RECOVERY_RUNS = 2


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


def usable_text(text: str) -> str:
    if any(marker in text for marker in LEAKED_CODE_MARKERS):
        logger.warning("Model answered with tool code instead of text, ignoring it")
        return ""
    return text


def wants_report(message: str) -> bool:
    return bool(REPORT_REQUEST.search(message or ""))


def build_system_prompt(actor: Actor, settings: Settings) -> str:
    prompt = SYSTEM_PROMPT_RADE.format(name=actor.name, role_label=actor.role_label, cpf=actor.cpf)
    if actor.role == ActorRole.COORDINATOR:
        prompt += COORDINATOR_SCOPE_PROMPT.format(threshold=settings.report_list_threshold)
    else:
        prompt += STUDENT_SCOPE_PROMPT
    if settings.reports_enabled:
        prompt += REPORT_PROMPT
    return prompt + SYSTEM_PROMPT_FINAL_INSTRUCTION


@dataclass
class TurnResult:
    text: str
    messages: List[BaseMessage]
    tools_used: List[str]
    used_fallback: bool
    model_calls: int


@dataclass
class RunOutcome:
    stage: int
    transcript: List[BaseMessage]
    text: str
    new_tool_results: bool


@dataclass
class _Turn:
    actor: Actor
    system_prompt: str
    tools: list
    executor: ToolExecutor
    forced_tool: Optional[str] = None
    used_fallback: bool = False
    runs: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    graph: Any = field(default=None, repr=False)


class AIService:
    """
    Answers free-text questions by driving the model through the tool loop.

    Every model call goes primary -> fallback on overload, and a turn makes at
    most three model runs: the first one plus two recovery runs when the
    model used tools but produced no text.
    """

    def __init__(
        self,
        primary_llm,
        fallback_llm,
        backend,
        cache: ExpiringCache,
        reports: ReportService,
        metrics: MetricsService,
        settings: Settings,
    ):
        self.primary_llm = primary_llm
        self.fallback_llm = fallback_llm
        self.backend = backend
        self.cache = cache
        self.reports = reports
        self.metrics = metrics
        self.settings = settings

    async def process_tool_call(
        self,
        actor: Actor,
        user_message: str,
        tool_names: List[str],
        history: Optional[Any] = None,
    ) -> TurnResult:
        """
        Processes one open-chat turn.

        Args:
            actor: Authenticated user; its CPF keys the cache entries.
            user_message: Text typed by the user.
            tool_names: Role-scoped tool catalog for this actor.
            history: Previous messages (objects or their dict form). When None
                the history cached for the actor is used.

        Returns:
            TurnResult with the answer text and the full history to persist.
        """
        if self.primary_llm is None:
            raise RuntimeError("Primary language model is not configured (OPENAI_API_KEY)")

        started = time.monotonic()
        conversation_key = f"conversation_{actor.cpf}"
        previous = load_history(self.cache.get(conversation_key) if history is None else history)
        messages = trim_history(
            previous + [HumanMessage(content=user_message)],
            self.settings.history_max_messages,
            self.settings.history_tool_pairs,
        )

        executor = ToolExecutor(actor, self.backend, self.cache, self.reports, self.settings.tool_cache_ttl_ms)
        turn = _Turn(
            actor=actor,
            system_prompt=build_system_prompt(actor, self.settings),
            tools=executor.build_tools(tool_names),
            executor=executor,
        )
        turn.graph = build_tool_graph(self._model_caller(turn), turn.tools, self.settings.max_tool_steps)

        try:
            outcome = await self._answer(turn, messages, user_message)
        except Exception as e:
            if executor.results:
                logger.error(f"Model call failed after tools ran for CPF {actor.cpf}, answering from tool results: {e}")
                outcome = RunOutcome(stage=0, transcript=[], text="", new_tool_results=False)
            elif is_overload_error(e):
                logger.error(f"Primary and fallback models overloaded for CPF {actor.cpf}: {e}")
                self._record_metric(turn, user_message, started, OVERLOADED_TEXT)
                return TurnResult(OVERLOADED_TEXT, messages, self._tools_used(turn), True, turn.runs)
            else:
                raise

        text = outcome.text
        transcript = [
            m for m in outcome.transcript
            if not (isinstance(m, AIMessage) and not m.tool_calls and not usable_text(message_text(m)))
        ]
        if not text:
            text = synthesize_answer(executor.results, self.settings.report_list_threshold) if executor.results else NO_ANSWER_TEXT
            transcript.append(AIMessage(content=text))

        full_history = messages + transcript
        self.cache.set(conversation_key, dump_history(full_history), self.settings.session_ttl_ms)
        self._record_metric(turn, user_message, started, text)

        return TurnResult(text, full_history, self._tools_used(turn), turn.used_fallback, turn.runs)

    async def _answer(self, turn: _Turn, messages: List[BaseMessage], user_message: str) -> RunOutcome:
        executor = turn.executor

        async def first_run(_):
            return await self._run(turn, 1, messages, [])

        async def format_answer_run(previous: RunOutcome):
            logger.info("Model returned no text after tools, asking for a formatted answer")
            return await self._run(
                turn, 2, messages, previous.transcript,
                instruction=HumanMessage(content=FORMAT_ANSWER_INSTRUCTION),
            )

        async def forced_report_run(previous: RunOutcome):
            fmt = detect_requested_format(user_message)
            logger.info(f"Forcing {REPORT_TOOL} ({fmt}) for a report request")
            return await self._run(
                turn, 3, messages, previous.transcript,
                instruction=HumanMessage(content=FORCE_REPORT_INSTRUCTION.format(format=fmt)),
                forced_tool=REPORT_TOOL,
            )

        def needs_another_run(outcome) -> bool:
            if isinstance(outcome, Exception) or outcome.text:
                return False
            if outcome.stage == 1:
                return bool(executor.results)
            has_report = any(r.tool_name == REPORT_TOOL for r in executor.results)
            return (
                outcome.new_tool_results
                and wants_report(user_message)
                and not has_report
                and REPORT_TOOL in {t.name for t in turn.tools}
            )

        policy = AttemptPolicy(max_extra=EXTRA_RECOVERY_RUNS)
        return await policy.attempt([first_run, format_answer_run, forced_report_run], needs_another_run)

    async def _run(
        self,
        turn: _Turn,
        stage: int,
        messages: List[BaseMessage],
        transcript: List[BaseMessage],
        instruction: Optional[HumanMessage] = None,
        forced_tool: Optional[str] = None,
    ) -> RunOutcome:
        """One full model run; the synthetic instruction is sent but never kept."""
        turn.runs += 1
        turn.forced_tool = forced_tool
        results_before = len(turn.executor.results)

        conversation = messages + transcript + ([instruction] if instruction else [])
        produced = await run_tool_loop(turn.graph, conversation)

        last = produced[-1] if produced else None
        text = ""
        if isinstance(last, AIMessage) and not last.tool_calls:
            text = usable_text(message_text(last))

        return RunOutcome(
            stage=stage,
            transcript=transcript + produced,
            text=text,
            new_tool_results=len(turn.executor.results) > results_before,
        )

    def _model_caller(self, turn: _Turn):
        async def call_model(messages: List[BaseMessage], step: int) -> BaseMessage:
            tool_choice = turn.forced_tool if step == 0 else None
            prompt = [SystemMessage(content=turn.system_prompt)] + list(messages)
            return await self._invoke_with_fallback(turn, prompt, tool_choice)

        return call_model

    async def _invoke_with_fallback(self, turn: _Turn, prompt: List[BaseMessage], tool_choice: Optional[str]):
        def bound(llm):
            kwargs = {"tool_choice": tool_choice} if tool_choice else {}
            return llm.bind_tools(turn.tools, **kwargs)

        async def primary(_):
            response = await bound(self.primary_llm).ainvoke(prompt)
            self._count_usage(turn, prompt, response)
            return response

        async def fallback(error):
            logger.warning(f"Primary model overloaded ({error}), switching to fallback model")
            turn.used_fallback = True
            response = await bound(self.fallback_llm).ainvoke(prompt)
            self._count_usage(turn, prompt, response)
            return response

        calls = [primary] + ([fallback] if self.fallback_llm is not None else [])
        policy = AttemptPolicy(max_extra=1)
        return await policy.attempt(calls, lambda o: isinstance(o, Exception) and is_overload_error(o))

    def _count_usage(self, turn: _Turn, prompt: List[BaseMessage], response: BaseMessage) -> None:
        usage = getattr(response, "usage_metadata", None)
        if usage:
            turn.input_tokens += usage.get("input_tokens", 0)
            turn.output_tokens += usage.get("output_tokens", 0)
            return
        turn.input_tokens += estimate_tokens("".join(message_text(m) for m in prompt))
        turn.output_tokens += estimate_tokens(message_text(response))

    def _tools_used(self, turn: _Turn) -> List[str]:
        return list(dict.fromkeys(r.tool_name for r in turn.executor.results))

    def _record_metric(self, turn: _Turn, user_message: str, started: float, text: str) -> None:
        model = self.settings.fallback_model if turn.used_fallback else self.settings.primary_model
        output_tokens = turn.output_tokens or estimate_tokens(text)
        self.metrics.record(
            ChatMetric(
                user_id=turn.actor.cpf,
                user_type=turn.actor.role.value,
                message=user_message[:100],
                model=model,
                response_time_ms=int((time.monotonic() - started) * 1000),
                input_tokens=turn.input_tokens,
                output_tokens=output_tokens,
                total_tokens=turn.input_tokens + output_tokens,
                estimated_cost=estimate_cost(model, turn.input_tokens, output_tokens),
                tools_used=self._tools_used(turn),
                cache_hits=turn.executor.cache_hits,
                fallback_used=turn.used_fallback,
                model_runs=turn.runs,
            )
        )
