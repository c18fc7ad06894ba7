import groq
import httpx
import pytest

from conftest import FakeGroqClient
from exam_prep.core import ai_services
from exam_prep.core.ai_services import AIService, resolve_provider_key
from exam_prep.core.config import config
from exam_prep.core.exceptions import (
    ConfigError, GenerationFailed, UpstreamRateLimited, UpstreamPaymentRequired
)

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def status_error(status):
    response = httpx.Response(status, request=REQUEST)
    if status == 429:
        return groq.RateLimitError("rate limited", response=response, body=None)
    return groq.APIStatusError(f"status {status}", response=response, body=None)


def service_with(db_manager, *outcomes):
    client = FakeGroqClient(outcomes)
    service = AIService(db_manager, client_factory=lambda api_key: client)
    return service, client


class TestResolveProviderKey:
    def test_admin_setting_wins(self, db_manager):
        db_manager.set_setting("LLM_API_KEY", " from-settings ")
        assert resolve_provider_key(db_manager, "LLM_API_KEY", "from-env") == "from-settings"

    def test_environment_fallback(self, db_manager):
        assert resolve_provider_key(db_manager, "LLM_API_KEY", "from-env") == "from-env"

    def test_missing_everywhere(self, db_manager):
        with pytest.raises(ConfigError, match="LLM_API_KEY not configured"):
            resolve_provider_key(db_manager, "LLM_API_KEY", "")


class TestComplete:
    def test_returns_stripped_content(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, client = service_with(db_manager, "  [1, 2]  \n")

        assert service.complete("system", "user") == "[1, 2]"

        request = client.requests[0]
        assert request["model"] == config.LLM_MODEL
        assert request["messages"][0] == {"role": "system", "content": "system"}
        assert request["messages"][1] == {"role": "user", "content": "user"}

    def test_missing_key(self, db_manager, no_env_keys):
        service, client = service_with(db_manager, "unused")

        with pytest.raises(ConfigError):
            service.complete("system", "user")
        assert client.requests == []

    def test_rate_limit(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, _ = service_with(db_manager, status_error(429))

        with pytest.raises(UpstreamRateLimited):
            service.complete("system", "user")

    def test_payment_required(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, _ = service_with(db_manager, status_error(402))

        with pytest.raises(UpstreamPaymentRequired):
            service.complete("system", "user")

    def test_other_status_is_generation_failure(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, _ = service_with(db_manager, status_error(500))

        with pytest.raises(GenerationFailed, match="500"):
            service.complete("system", "user")

    def test_connection_error(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, _ = service_with(db_manager, groq.APIConnectionError(request=REQUEST))

        with pytest.raises(GenerationFailed):
            service.complete("system", "user")

    def test_empty_content(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        service, _ = service_with(db_manager, "   ")

        with pytest.raises(GenerationFailed):
            service.complete("system", "user")


class TestRetries:
    def test_single_attempt_by_default(self, db_manager, monkeypatch):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        monkeypatch.setattr(config, "LLM_RETRIES", 1)
        service, client = service_with(db_manager, status_error(500), "ok")

        with pytest.raises(GenerationFailed):
            service.complete("system", "user")
        assert len(client.requests) == 1

    def test_transient_failure_retried(self, db_manager, monkeypatch):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        monkeypatch.setattr(config, "LLM_RETRIES", 3)
        monkeypatch.setattr(ai_services.time, "sleep", lambda seconds: None)
        service, client = service_with(db_manager, status_error(503), "ok")

        assert service.complete("system", "user") == "ok"
        assert len(client.requests) == 2

    def test_rate_limit_never_retried(self, db_manager, monkeypatch):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        monkeypatch.setattr(config, "LLM_RETRIES", 3)
        monkeypatch.setattr(ai_services.time, "sleep", lambda seconds: None)
        service, client = service_with(db_manager, status_error(429), "ok")

        with pytest.raises(UpstreamRateLimited):
            service.complete("system", "user")
        assert len(client.requests) == 1


class TestHealth:
    def test_degraded_without_key(self, db_manager, no_env_keys):
        assert AIService(db_manager).health_check()["status"] == "degraded"

    def test_healthy_with_key(self, db_manager):
        db_manager.set_setting(config.LLM_API_KEY_SETTING, "key")
        assert AIService(db_manager).health_check()["status"] == "healthy"
