import logging
from typing import Any, Dict, Optional

from rade_bot.src.models.chat_models import Actor, ActorRole, ChatEnvironment
from rade_bot.src.services.domain_client import ActorNotFoundError, DomainBackendError, only_digits

logger = logging.getLogger(__name__)

CPF_LENGTH = 11


def normalize_cpf(text: Optional[str]) -> Optional[str]:
    """Returns the 11 CPF digits, or None when the text does not hold exactly 11 digits."""
    digits = only_digits(text)
    return digits if len(digits) == CPF_LENGTH else None


def phones_match(record_phone: Optional[str], typed_phone: Optional[str]) -> bool:
    expected = only_digits(record_phone)
    return bool(expected) and expected == only_digits(typed_phone)


def should_request_phone(environment: ChatEnvironment, test_mode: bool) -> bool:
    """Web sessions always confirm the phone; mobile sessions only in test mode."""
    if environment == ChatEnvironment.WEB:
        return True
    return test_mode


def first_organization(info: Dict[str, Any]) -> Optional[str]:
    organizations = info.get("organizationsAndCourses") or []
    if not organizations:
        return None
    return organizations[0].get("organizationName")


def actor_from_info(cpf: str, role: ActorRole, info: Dict[str, Any]) -> Actor:
    prefix = "student" if role == ActorRole.STUDENT else "coordinator"
    return Actor(
        cpf=cpf,
        name=info.get(f"{prefix}Name") or "",
        role=role,
        phone=info.get(f"{prefix}Phone") or None,
        email=info.get(f"{prefix}Email"),
        organization=first_organization(info),
    )


async def fetch_actor(backend, cpf: str, role: ActorRole) -> Actor:
    if role == ActorRole.STUDENT:
        info = await backend.get_student_info(cpf)
    else:
        info = await backend.get_coordinator_info(cpf)
    return actor_from_info(cpf, role, info)


async def resolve_actor(backend, cpf: str) -> Actor:
    """
    Finds out who owns the CPF, trying the student record first.

    Args:
        backend: Domain backend client.
        cpf: Normalized CPF (11 digits).

    Returns:
        The Actor with its role.

    Raises:
        ActorNotFoundError: Neither a student nor a coordinator has this CPF.
        DomainBackendError: A lookup failed and the CPF could not be ruled out.
    """
    student_error = None
    try:
        return await fetch_actor(backend, cpf, ActorRole.STUDENT)
    except ActorNotFoundError:
        logger.debug(f"CPF {cpf} is not a student, trying coordinator")
    except DomainBackendError as e:
        logger.warning(f"Student lookup failed for CPF {cpf}: {e}")
        student_error = e

    try:
        return await fetch_actor(backend, cpf, ActorRole.COORDINATOR)
    except ActorNotFoundError:
        if student_error is not None:
            raise student_error
        raise ActorNotFoundError(f"CPF {cpf} não encontrado como estudante nem como coordenador.")
