"""
Menu-driven chat: profile selection, identity check, role menus with help
videos and escalation to a human agent.

Every handler receives the user text and the current state and returns a
FlowResponse. Invalid input repeats the same prompt and keeps the state.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from rade_bot.src.graph.state import FlowResponse, MenuFlowState, MenuState
from rade_bot.src.models.chat_models import ActorHint, ActorRole, ChatEnvironment
from rade_bot.src.services.domain_client import ActorNotFoundError, DomainBackendError, only_digits
from rade_bot.src.services.handoff_service import HandoffService
from rade_bot.src.services.user_service import fetch_actor, normalize_cpf, phones_match, should_request_phone

logger = logging.getLogger(__name__)

STUDENT_VIDEOS: Dict[str, Tuple[str, str]] = {
    "1": ("Como fazer meu cadastro", "https://www.youtube.com/watch?v=video1_cadastro"),
    "2": ("Como agendar minhas atividades", "https://www.youtube.com/watch?v=video2_agendamento"),
    "3": ("Como iniciar e finalizar atividade", "https://www.youtube.com/watch?v=video3_iniciar_finalizar"),
    "4": ("Como fazer uma avaliação", "https://www.youtube.com/watch?v=video4_avaliacao"),
    "5": ("Como justificar atividade perdida", "https://www.youtube.com/watch?v=video5_justificar"),
    "6": ("Como preencher meu TCE", "https://www.youtube.com/watch?v=video6_tce"),
}
COORDINATOR_VIDEOS: Dict[str, Tuple[str, str]] = {
    "1": ("Como validar atividades", "https://www.youtube.com/watch?v=9AQrYArZ-5k"),
    "2": ("Como realizar avaliação", "https://www.youtube.com/watch?v=RkjrtSsEDP8"),
    "3": ("Como agendar retroativo", "https://www.youtube.com/watch?v=TsXVDRszDnY"),
    "4": ("Como gerar QR code", "https://www.youtube.com/watch?v=bT1Qnk1B8Oo"),
}

PROFILE_PROMPT = (
    "Olá! Eu sou o assistente virtual da RADE. 👋\n"
    "Para começar, me diga qual é o seu perfil:\n"
    "1 - Sou Estudante\n"
    "2 - Sou Coordenador\n"
    "3 - Ainda não sou usuário"
)
INVALID_OPTION = "Desculpe, não entendi sua resposta. 🤔"
ASK_CPF = "Entendido. Para continuar, por favor, informe seu CPF (apenas números)."
INVALID_CPF = "CPF inválido. O CPF deve ter 11 dígitos. Por favor, informe novamente (apenas números)."
CPF_NOT_FOUND = {
    ActorRole.STUDENT: (
        "Não encontrei um estudante com esse CPF. Verifique os números e tente novamente, "
        "ou digite outro CPF."
    ),
    ActorRole.COORDINATOR: (
        "Não encontrei um coordenador com esse CPF. Verifique os números e tente novamente, "
        "ou digite outro CPF."
    ),
}
LOOKUP_FAILED = "Tive um problema para consultar seus dados agora. 😕 Por favor, tente novamente em instantes."
ASK_PHONE = "Obrigado! Para confirmar sua identidade, informe o telefone cadastrado (com DDD)."
PHONE_MISMATCH = (
    "O telefone informado não confere com o cadastro. Por favor, informe o telefone cadastrado (com DDD)."
)
NO_PHONE_ON_RECORD = (
    "Não encontrei um telefone no seu cadastro, então não consigo confirmar sua identidade por aqui. "
    "Por favor, atualize seu telefone no aplicativo RADE ou procure a coordenação da sua instituição. "
    "O atendimento será encerrado."
)
ASK_NEW_USER_DETAILS = (
    "Ok. Para realizar seu cadastro inicial, por favor, me diga seu nome completo, CPF, instituição, "
    "curso e período, tudo em uma única mensagem."
)
NEW_USER_RECEIVED = (
    "Obrigado! Seus dados foram recebidos e em breve entraremos em contato para finalizar seu cadastro. "
    "O atendimento será encerrado."
)
HELP_CHOICE_PROMPT = (
    "O vídeo foi suficiente ou posso ajudar com algo mais?\n"
    "1 - Sim, foi suficiente\n"
    "2 - Não, preciso de mais ajuda"
)
GOODBYE = "Ok, estou encerrando nosso atendimento. Se precisar de algo mais, basta me chamar! 👋"

CPF_STATES = {
    MenuState.AWAITING_STUDENT_CPF: ActorRole.STUDENT,
    MenuState.AWAITING_COORDINATOR_CPF: ActorRole.COORDINATOR,
}
PHONE_STATES = {
    MenuState.AWAITING_STUDENT_PHONE: ActorRole.STUDENT,
    MenuState.AWAITING_COORDINATOR_PHONE: ActorRole.COORDINATOR,
}


@dataclass(frozen=True)
class RoleMenu:
    menu_state: MenuState
    help_state: MenuState
    phone_state: MenuState
    videos: Dict[str, Tuple[str, str]]
    back_option: str
    end_option: str
    # hands the conversation to the AI assistant (hybrid chat only)
    ai_option: Optional[str] = None


ROLE_MENUS = {
    ActorRole.STUDENT: RoleMenu(
        MenuState.AWAITING_STUDENT_MENU_CHOICE,
        MenuState.AWAITING_STUDENT_HELP_CHOICE,
        MenuState.AWAITING_STUDENT_PHONE,
        STUDENT_VIDEOS,
        back_option="7",
        end_option="8",
    ),
    ActorRole.COORDINATOR: RoleMenu(
        MenuState.AWAITING_COORDINATOR_MENU_CHOICE,
        MenuState.AWAITING_COORDINATOR_HELP_CHOICE,
        MenuState.AWAITING_COORDINATOR_PHONE,
        COORDINATOR_VIDEOS,
        back_option="5",
        end_option="6",
    ),
}
HYBRID_MENUS = {
    ActorRole.STUDENT: replace(ROLE_MENUS[ActorRole.STUDENT], ai_option="7", back_option="8", end_option="9"),
    ActorRole.COORDINATOR: replace(ROLE_MENUS[ActorRole.COORDINATOR], ai_option="5", back_option="6", end_option="7"),
}


def menu_text(role: ActorRole, name: Optional[str], menus: Optional[Dict[ActorRole, RoleMenu]] = None) -> str:
    menu = (menus or ROLE_MENUS)[role]
    greeting = f"Olá, {name}! 😊" if name else "Olá! 😊"
    lines = [f"{greeting} Como posso te ajudar hoje?"]
    lines += [f"{option} - {label}" for option, (label, _) in menu.videos.items()]
    if menu.ai_option:
        lines.append(f"{menu.ai_option} - Conversar com o Assistente Virtual")
    lines.append(f"{menu.back_option} - Voltar ao menu inicial")
    lines.append(f"{menu.end_option} - Encerrar atendimento")
    return "\n".join(lines)


def _role_of(state: MenuFlowState) -> ActorRole:
    if state.current_state in (
        MenuState.AWAITING_COORDINATOR_MENU_CHOICE,
        MenuState.AWAITING_COORDINATOR_HELP_CHOICE,
        MenuState.AWAITING_COORDINATOR_PHONE,
        MenuState.AWAITING_COORDINATOR_CPF,
    ):
        return ActorRole.COORDINATOR
    return ActorRole.STUDENT


class MenuFlow:
    def __init__(
        self,
        backend,
        handoff: HandoffService,
        test_mode: bool,
        menus: Optional[Dict[ActorRole, RoleMenu]] = None,
    ):
        self.backend = backend
        self.handoff = handoff
        self.test_mode = test_mode
        self.menus = menus or ROLE_MENUS

    async def handle(
        self,
        message: str,
        state: Optional[MenuFlowState],
        environment: ChatEnvironment = ChatEnvironment.WEB,
        actor_hint: Optional[ActorHint] = None,
    ) -> FlowResponse:
        if state is None or state.current_state in (MenuState.START, MenuState.END):
            return self.start()

        current = state.current_state
        logger.info(f"Menu flow handling state {current.value}")
        if current == MenuState.AWAITING_USER_TYPE:
            return self.handle_user_type(message, state)
        if current in CPF_STATES:
            return await self.handle_cpf(message, state, CPF_STATES[current], environment, actor_hint)
        if current in PHONE_STATES:
            return await self.handle_phone(message, state, PHONE_STATES[current])
        if current == MenuState.AWAITING_NEW_USER_DETAILS:
            return self.handle_new_user_details(message, state)
        if current in (MenuState.AWAITING_STUDENT_MENU_CHOICE, MenuState.AWAITING_COORDINATOR_MENU_CHOICE):
            return self.handle_menu_choice(message, state, _role_of(state))
        if current in (MenuState.AWAITING_STUDENT_HELP_CHOICE, MenuState.AWAITING_COORDINATOR_HELP_CHOICE):
            return await self.handle_help_choice(message, state, _role_of(state))
        return self.start()

    def start(self) -> FlowResponse:
        return FlowResponse(PROFILE_PROMPT, MenuFlowState(MenuState.AWAITING_USER_TYPE, {}))

    def handle_user_type(self, message: str, state: MenuFlowState) -> FlowResponse:
        choice = message.strip()
        if choice == "1":
            return FlowResponse(ASK_CPF, state.evolve(MenuState.AWAITING_STUDENT_CPF))
        if choice == "2":
            return FlowResponse(ASK_CPF, state.evolve(MenuState.AWAITING_COORDINATOR_CPF))
        if choice == "3":
            return FlowResponse(ASK_NEW_USER_DETAILS, state.evolve(MenuState.AWAITING_NEW_USER_DETAILS))
        return FlowResponse(f"{INVALID_OPTION}\n\n{PROFILE_PROMPT}", state)

    async def handle_cpf(
        self,
        message: str,
        state: MenuFlowState,
        role: ActorRole,
        environment: ChatEnvironment,
        actor_hint: Optional[ActorHint],
    ) -> FlowResponse:
        cpf = normalize_cpf(message)
        if cpf is None:
            return FlowResponse(INVALID_CPF, state)

        try:
            actor = await fetch_actor(self.backend, cpf, role)
        except ActorNotFoundError:
            logger.info(f"CPF {cpf} not found as {role.value}")
            return FlowResponse(CPF_NOT_FOUND[role], state)
        except DomainBackendError as e:
            logger.error(f"Error looking up CPF {cpf} as {role.value}: {e}")
            return FlowResponse(LOOKUP_FAILED, state)

        menu = self.menus[role]
        if should_request_phone(environment, self.test_mode):
            if not actor.phone:
                return FlowResponse(NO_PHONE_ON_RECORD, state.evolve(MenuState.END, reset=True))
            return FlowResponse(ASK_PHONE, state.evolve(menu.phone_state, cpf=cpf, name=actor.name))

        phone = only_digits(actor_hint.phone) if actor_hint and actor_hint.phone else None
        next_state = state.evolve(menu.menu_state, cpf=cpf, name=actor.name, phone=phone)
        return FlowResponse(menu_text(role, actor.name, self.menus), next_state)

    async def handle_phone(self, message: str, state: MenuFlowState, role: ActorRole) -> FlowResponse:
        cpf = state.data.get("cpf")
        if not cpf:
            cpf_state = MenuState.AWAITING_STUDENT_CPF if role == ActorRole.STUDENT else MenuState.AWAITING_COORDINATOR_CPF
            return FlowResponse(ASK_CPF, state.evolve(cpf_state))

        try:
            actor = await fetch_actor(self.backend, cpf, role)
        except DomainBackendError as e:
            logger.error(f"Error looking up CPF {cpf} for phone confirmation: {e}")
            return FlowResponse(LOOKUP_FAILED, state)

        if not phones_match(actor.phone, message):
            return FlowResponse(PHONE_MISMATCH, state)

        next_state = state.evolve(self.menus[role].menu_state, phone=only_digits(message), name=actor.name)
        return FlowResponse(menu_text(role, actor.name, self.menus), next_state)

    def handle_new_user_details(self, message: str, state: MenuFlowState) -> FlowResponse:
        details = message.strip()
        if not details:
            return FlowResponse(ASK_NEW_USER_DETAILS, state)
        logger.info("New user details received")
        return FlowResponse(NEW_USER_RECEIVED, state.evolve(MenuState.END, reset=True))

    def handle_menu_choice(self, message: str, state: MenuFlowState, role: ActorRole) -> FlowResponse:
        choice = message.strip()
        menu = self.menus[role]

        if choice in menu.videos:
            label, url = menu.videos[choice]
            response = f"Claro! Aqui está o vídeo sobre \"{label}\": {url}\n\n{HELP_CHOICE_PROMPT}"
            return FlowResponse(response, state.evolve(menu.help_state, last_option=choice))
        if choice == menu.back_option:
            return self.start()
        if choice == menu.end_option:
            return FlowResponse(GOODBYE, state.evolve(MenuState.END, reset=True))

        return FlowResponse(f"{INVALID_OPTION}\n\n{menu_text(role, state.data.get('name'), self.menus)}", state)

    async def handle_help_choice(self, message: str, state: MenuFlowState, role: ActorRole) -> FlowResponse:
        choice = message.strip()
        menu = self.menus[role]

        if choice == "1":
            return FlowResponse(menu_text(role, state.data.get("name"), self.menus), state.evolve(menu.menu_state))
        if choice == "2":
            option = state.data.get("last_option")
            label = menu.videos.get(option, ("Opção não identificada", ""))[0]
            reason = f"{label} (Menu {option})" if option else label
            logger.info(f"Escalating {role.value} {state.data.get('cpf')} to a human agent: {reason}")
            response = await self.handoff.escalate(role, state.data.get("cpf"), state.data.get("phone"), reason)
            return FlowResponse(response, state.evolve(MenuState.END, reset=True))

        return FlowResponse(f"{INVALID_OPTION}\n\n{HELP_CHOICE_PROMPT}", state)
