import logging
from typing import Optional

from rade_bot.src.graph.state import FlowResponse, OpenFlowState, OpenState
from rade_bot.src.llm.history import dump_history
from rade_bot.src.llm.tools import tool_names_for
from rade_bot.src.models.chat_models import Actor, ActorHint, ActorRole, ChatEnvironment
from rade_bot.src.services.ai_service import AIService
from rade_bot.src.services.domain_client import ActorNotFoundError, DomainBackendError, only_digits
from rade_bot.src.services.user_service import fetch_actor, normalize_cpf, phones_match, resolve_actor, should_request_phone

logger = logging.getLogger(__name__)

WELCOME = (
    "Olá! Eu sou o assistente virtual da RADE. 👋\n"
    "Posso consultar suas atividades, profissionais e contatos. "
    "Para começar, informe seu CPF (apenas números)."
)
INVALID_CPF = "CPF inválido. O CPF deve ter 11 dígitos. Por favor, informe novamente (apenas números)."
CPF_NOT_FOUND = "Não encontrei nenhum cadastro com esse CPF. Verifique os números e tente novamente."
LOOKUP_FAILED = "Tive um problema para consultar seus dados agora. 😕 Por favor, tente novamente em instantes."
ASK_PHONE = "Obrigado! Para confirmar sua identidade, informe o telefone cadastrado (com DDD)."
PHONE_MISMATCH = (
    "O telefone informado não confere com o cadastro. Por favor, informe o telefone cadastrado (com DDD)."
)
NO_PHONE_ON_RECORD = (
    "Não encontrei um telefone no seu cadastro, então não consigo confirmar sua identidade por aqui. "
    "Por favor, atualize seu telefone no aplicativo RADE. O atendimento será encerrado."
)
AUTHENTICATED_GREETING = (
    "Olá, {name}! 😊 Você está conectado como {role_label}. "
    "Pode me perguntar o que precisar. Para encerrar, digite \"sair\"."
)
ASK_QUESTION = "Pode me dizer como posso ajudar? Para encerrar, digite \"sair\"."
GOODBYE = "Atendimento encerrado. Se precisar de algo mais, basta me chamar! 👋"

EXIT_COMMANDS = {"sair", "encerrar", "tchau", "fim", "exit"}


async def verified_actor(backend, data: dict) -> Actor:
    """
    Re-reads the authenticated actor under the role stored in the state.

    Raises ActorNotFoundError when the CPF does not hold that role.
    """
    try:
        role = ActorRole(data.get("role", ActorRole.STUDENT.value))
    except ValueError:
        raise ActorNotFoundError(f"Unknown role {data.get('role')!r}")
    return await fetch_actor(backend, data["cpf"], role)


class OpenFlow:
    """CPF/phone capture in front of the AI chat."""

    def __init__(self, backend, ai_service: AIService, test_mode: bool, reports_enabled: bool = True):
        self.backend = backend
        self.ai_service = ai_service
        self.test_mode = test_mode
        self.reports_enabled = reports_enabled

    async def handle(
        self,
        message: str,
        state: Optional[OpenFlowState],
        environment: ChatEnvironment = ChatEnvironment.WEB,
        actor_hint: Optional[ActorHint] = None,
    ) -> FlowResponse:
        if state is None or state.current_state in (OpenState.START, OpenState.END):
            return FlowResponse(WELCOME, OpenFlowState(OpenState.AWAITING_CPF, {}))

        if state.current_state == OpenState.AWAITING_CPF:
            return await self.handle_cpf(message, state, environment, actor_hint)
        if state.current_state == OpenState.AWAITING_PHONE:
            return await self.handle_phone(message, state)
        return await self.handle_question(message, state)

    async def handle_cpf(
        self,
        message: str,
        state: OpenFlowState,
        environment: ChatEnvironment,
        actor_hint: Optional[ActorHint],
    ) -> FlowResponse:
        cpf = normalize_cpf(message)
        if cpf is None:
            return FlowResponse(INVALID_CPF, state)

        try:
            actor = await resolve_actor(self.backend, cpf)
        except ActorNotFoundError:
            logger.info(f"CPF {cpf} not found for open chat")
            return FlowResponse(CPF_NOT_FOUND, state)
        except DomainBackendError as e:
            logger.error(f"Error resolving CPF {cpf}: {e}")
            return FlowResponse(LOOKUP_FAILED, state)

        if should_request_phone(environment, self.test_mode):
            if not actor.phone:
                return FlowResponse(NO_PHONE_ON_RECORD, state.evolve(OpenState.END, reset=True))
            return FlowResponse(ASK_PHONE, state.evolve(OpenState.AWAITING_PHONE, cpf=cpf, role=actor.role.value))

        phone = only_digits(actor_hint.phone) if actor_hint and actor_hint.phone else None
        return self._authenticated(actor, state, phone)

    async def handle_phone(self, message: str, state: OpenFlowState) -> FlowResponse:
        cpf = state.data.get("cpf")
        if not cpf:
            return FlowResponse(WELCOME, state.evolve(OpenState.AWAITING_CPF, reset=True))

        role = ActorRole(state.data.get("role", ActorRole.STUDENT.value))
        try:
            actor = await fetch_actor(self.backend, cpf, role)
        except DomainBackendError as e:
            logger.error(f"Error looking up CPF {cpf} for phone confirmation: {e}")
            return FlowResponse(LOOKUP_FAILED, state)

        if not phones_match(actor.phone, message):
            return FlowResponse(PHONE_MISMATCH, state)
        return self._authenticated(actor, state, only_digits(message))

    def _authenticated(self, actor: Actor, state: OpenFlowState, phone: Optional[str]) -> FlowResponse:
        logger.info(f"Open chat authenticated CPF {actor.cpf} as {actor.role.value}")
        next_state = state.evolve(
            OpenState.AUTHENTICATED,
            reset=True,
            cpf=actor.cpf,
            name=actor.name,
            role=actor.role.value,
            phone=phone,
            conversation_history=[],
        )
        return FlowResponse(AUTHENTICATED_GREETING.format(name=actor.name, role_label=actor.role_label), next_state)

    async def handle_question(self, message: str, state: OpenFlowState) -> FlowResponse:
        text = message.strip()
        if not text:
            return FlowResponse(ASK_QUESTION, state)
        if text.lower() in EXIT_COMMANDS:
            return FlowResponse(GOODBYE, state.evolve(OpenState.END, reset=True))
        if not state.data.get("cpf"):
            return FlowResponse(WELCOME, state.evolve(OpenState.AWAITING_CPF, reset=True))

        try:
            actor = await verified_actor(self.backend, state.data)
        except ActorNotFoundError as e:
            logger.warning(f"Stored identity for CPF {state.data.get('cpf')} no longer resolves, restarting: {e}")
            return FlowResponse(WELCOME, state.evolve(OpenState.AWAITING_CPF, reset=True))
        except DomainBackendError as e:
            logger.error(f"Error re-reading CPF {state.data.get('cpf')} before answering: {e}")
            return FlowResponse(LOOKUP_FAILED, state)

        result = await self.ai_service.process_tool_call(
            actor,
            text,
            tool_names_for(actor.role, self.reports_enabled),
            history=state.data.get("conversation_history"),
        )
        return FlowResponse(result.text, state.evolve(conversation_history=dump_history(result.messages)))
