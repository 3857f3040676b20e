import pytest

from rade_bot.src.config.settings import Settings
from rade_bot.src.core.cache import ExpiringCache
from rade_bot.src.models.chat_models import Actor, ActorRole
from rade_bot.src.services.ai_service import AIService
from rade_bot.src.services.domain_client import InMemoryDomainBackend
from rade_bot.src.services.metrics_service import MetricsService
from rade_bot.src.services.report_service import ReportService

MARIA_CPF = "98765432100"
DANIELA_CPF = "11111111111"


@pytest.fixture
def settings():
    return Settings(test_mode=True, public_base_url="http://testserver")


@pytest.fixture
def cache():
    return ExpiringCache(default_ttl_ms=60_000)


@pytest.fixture
def backend():
    return InMemoryDomainBackend()


@pytest.fixture
def reports(cache):
    return ReportService(cache, "http://testserver", 60_000)


@pytest.fixture
def metrics(cache):
    return MetricsService(cache)


@pytest.fixture
def maria():
    return Actor(cpf=MARIA_CPF, name="Maria Clara Souza", role=ActorRole.STUDENT, phone="11999999999")


@pytest.fixture
def daniela():
    return Actor(cpf=DANIELA_CPF, name="Prof. Daniela Moura", role=ActorRole.COORDINATOR, phone="41991112233")


@pytest.fixture
def make_ai_service(backend, cache, reports, metrics, settings):
    def _make(primary, fallback=None):
        return AIService(primary, fallback, backend, cache, reports, metrics, settings)

    return _make
