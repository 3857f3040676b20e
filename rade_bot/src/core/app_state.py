import logging
from typing import Optional, Tuple

from rade_bot.src.config.settings import Settings
from rade_bot.src.core.cache import ExpiringCache
from rade_bot.src.graph.hybrid_flow import HybridFlow
from rade_bot.src.graph.menu_flow import HYBRID_MENUS, MenuFlow
from rade_bot.src.graph.open_flow import OpenFlow
from rade_bot.src.llm.base_llm import build_fallback_llm, build_primary_llm
from rade_bot.src.services.ai_service import AIService
from rade_bot.src.services.chat_service import ChatService
from rade_bot.src.services.domain_client import build_domain_backend
from rade_bot.src.services.handoff_service import HandoffService, InMemoryAgentDirectory, InMemoryNotificationSink
from rade_bot.src.services.metrics_service import MetricsService
from rade_bot.src.services.report_service import ReportService
from rade_bot.src.services.summary_service import SummaryService

logger = logging.getLogger(__name__)


class AppState:
    """Process-wide services, filled in by the application lifespan."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.cache: Optional[ExpiringCache] = None
        self.backend = None
        self.reports: Optional[ReportService] = None
        self.metrics: Optional[MetricsService] = None
        self.sink: Optional[InMemoryNotificationSink] = None
        self.chat_service: Optional[ChatService] = None


app_state = AppState()


def build_app_state(
    settings: Settings,
    state: Optional[AppState] = None,
    backend=None,
    llms: Optional[Tuple] = None,
    directory: Optional[InMemoryAgentDirectory] = None,
) -> AppState:
    """
    Wires every service from the settings.

    `backend`, `llms` (primary, fallback) and `directory` replace the
    ones built from the settings when given.
    """
    state = state or AppState()
    cache = ExpiringCache(default_ttl_ms=settings.session_ttl_ms, max_entries=settings.cache_max_entries)
    backend = backend if backend is not None else build_domain_backend(settings)
    primary_llm, fallback_llm = llms if llms is not None else (build_primary_llm(settings), build_fallback_llm(settings))

    reports = ReportService(cache, settings.public_base_url, settings.tool_cache_ttl_ms)
    metrics = MetricsService(cache)
    sink = InMemoryNotificationSink()
    handoff = HandoffService(
        backend,
        directory if directory is not None else InMemoryAgentDirectory.from_env(),
        sink,
        SummaryService(primary_llm),
    )
    ai_service = AIService(primary_llm, fallback_llm, backend, cache, reports, metrics, settings)

    state.settings = settings
    state.cache = cache
    state.backend = backend
    state.reports = reports
    state.metrics = metrics
    state.sink = sink
    open_flow = OpenFlow(backend, ai_service, settings.test_mode, settings.reports_enabled)
    state.chat_service = ChatService(
        MenuFlow(backend, handoff, settings.test_mode),
        open_flow,
        HybridFlow(MenuFlow(backend, handoff, settings.test_mode, HYBRID_MENUS), open_flow),
    )
    logger.info(f"Application state ready (test_mode={settings.test_mode}, use_api_data={settings.use_api_data})")
    return state


def get_chat_service() -> ChatService:
    return app_state.chat_service


def get_report_service() -> ReportService:
    return app_state.reports


def get_metrics_service() -> MetricsService:
    return app_state.metrics


def get_notification_sink() -> InMemoryNotificationSink:
    return app_state.sink
