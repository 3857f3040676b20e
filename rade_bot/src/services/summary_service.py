import logging
from datetime import datetime
from typing import Optional

from langchain_core.messages import HumanMessage

from rade_bot.src.llm.fallback_text import BRAZIL_TZ
from rade_bot.src.llm.prompts import SUMMARY_PROMPT
from rade_bot.src.models.chat_models import Actor

logger = logging.getLogger(__name__)

DEPRECATED_SENTINELS = ("descontinuado", "deprecated")
FOOTER_RULE = "━" * 33


def template_summary(actor: Actor, reason: str) -> str:
    return (
        f"👤 {actor.role_label} - CPF: {actor.cpf or 'Não informado'}\n\n"
        f"🎯 PRECISA DE AJUDA COM: {reason or 'Opção não identificada'}"
    )


def with_footer(summary: str, phone: Optional[str], now: Optional[datetime] = None) -> str:
    timestamp = (now or datetime.now(BRAZIL_TZ)).strftime("%d/%m/%Y %H:%M:%S")
    return (
        f"📄 RESUMO DA CONVERSA\n\n{summary}\n\n{FOOTER_RULE}\n"
        f"📱 Telefone: {phone or 'Não informado'}\n"
        f"⏰ Transferido em: {timestamp}\n"
        "🤖 Resumo gerado automaticamente"
    )


class SummaryService:
    """Summarizes a menu conversation for the human agent taking it over."""

    def __init__(self, llm=None):
        self.llm = llm

    async def summarize(self, actor: Actor, reason: str, phone: Optional[str]) -> str:
        summary = ""
        if self.llm is not None:
            prompt = SUMMARY_PROMPT.format(
                role_label=actor.role_label,
                cpf=actor.cpf,
                name=actor.name,
                reason=reason,
                phone=phone or "Não informado",
            )
            try:
                response = await self.llm.ainvoke([HumanMessage(content=prompt)])
                summary = response.content.strip() if isinstance(response.content, str) else ""
            except Exception as e:
                logger.error(f"Error generating handoff summary with the LLM: {e}")
                summary = ""

        if not summary or any(s in summary.lower() for s in DEPRECATED_SENTINELS):
            logger.info("Using template handoff summary")
            summary = template_summary(actor, reason)

        return with_footer(summary, phone)
