import logging
from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI

from rade_bot.src.config.settings import Settings

logger = logging.getLogger(__name__)


def build_primary_llm(settings: Settings) -> Optional[BaseChatModel]:
    # provider retries are disabled so an overload reaches the fallback tier at once
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set, the open chat will be unavailable")
        return None
    return ChatOpenAI(
        model=settings.primary_model,
        temperature=0.3,
        api_key=settings.openai_api_key,
        max_retries=0,
    )


def build_fallback_llm(settings: Settings) -> Optional[BaseChatModel]:
    if not settings.groq_api_key:
        logger.info("GROQ_API_KEY not set, running without a fallback model")
        return None
    return ChatGroq(
        model=settings.fallback_model,
        temperature=0.3,
        api_key=settings.groq_api_key,
        max_retries=settings.fallback_max_retries,
    )
