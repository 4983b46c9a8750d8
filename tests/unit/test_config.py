"""Tests for configuration management."""

import pytest
import yaml
from pydantic import ValidationError

from execution_backfill.config.settings import (
    BackfillSettings,
    ExchangeConfig,
    RateLimitConfig,
    load_settings,
    substitute_env_vars,
)


class TestBackfillSettings:
    """Test BackfillSettings defaults and validation."""

    def test_default_settings(self):
        settings = BackfillSettings()

        assert settings.service_name == "execution-backfill"
        assert settings.exchange.product_code == "BTC_JPY"
        assert settings.exchange.start_id == 636150891
        assert settings.exchange.page_size == 500
        assert settings.exchange.user_agent == "curl/7.63.0"
        assert settings.rate_limit.requests_per_minute == 500
        assert settings.rate_limit.burst == 5
        assert settings.storage.save_concurrency == 100
        assert settings.proxy.enabled is True

    def test_base_url_trailing_slash_stripped(self):
        config = ExchangeConfig(api_base_url="https://api.bitflyer.com/")

        assert config.api_base_url == "https://api.bitflyer.com"

    @pytest.mark.parametrize("field", ["start_id", "page_size"])
    def test_non_positive_exchange_values_rejected(self, field):
        with pytest.raises(ValidationError):
            ExchangeConfig(**{field: 0})

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValidationError):
            RateLimitConfig(requests_per_minute=0)

    def test_log_format_validation(self):
        settings = BackfillSettings(logging={'format': 'JSON'})
        assert settings.logging.format == 'json'

        with pytest.raises(ValidationError, match="Format must be"):
            BackfillSettings(logging={'format': 'xml'})

    def test_log_level_validation(self):
        settings = BackfillSettings(logging={'level': 'debug'})
        assert settings.logging.level == 'DEBUG'

        with pytest.raises(ValidationError, match="Level must be"):
            BackfillSettings(logging={'level': 'LOUD'})

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("BACKFILL_EXCHANGE__PRODUCT_CODE", "ETH_JPY")
        monkeypatch.setenv("BACKFILL_RATE_LIMIT__REQUESTS_PER_MINUTE", "120")

        settings = BackfillSettings()

        assert settings.exchange.product_code == "ETH_JPY"
        assert settings.rate_limit.requests_per_minute == 120


class TestConfigLoading:
    """Test configuration loading from files and environment."""

    def test_load_from_yaml_file(self, tmp_path):
        config_data = {
            'exchange': {'product_code': 'FX_BTC_JPY', 'start_id': 1000},
            'proxy': {'enabled': False},
            'storage': {'results_dir': str(tmp_path / 'out')},
        }
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(config_data))

        settings = load_settings(str(config_file))

        assert settings.exchange.product_code == 'FX_BTC_JPY'
        assert settings.exchange.start_id == 1000
        assert settings.proxy.enabled is False
        assert settings.storage.results_dir == str(tmp_path / 'out')

    def test_env_var_substitution_in_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROXY_API_KEY", "k-123")
        monkeypatch.delenv("PRODUCT_CODE", raising=False)
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "exchange:\n"
            "  product_code: ${PRODUCT_CODE:-BTC_JPY}\n"
            "proxy:\n"
            "  api_key: ${PROXY_API_KEY}\n"
        )

        settings = load_settings(str(config_file))

        assert settings.exchange.product_code == "BTC_JPY"
        assert settings.proxy.api_key == "k-123"

    def test_missing_required_env_var(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)

        with pytest.raises(ValueError, match="NOT_SET_ANYWHERE"):
            substitute_env_vars({'proxy': {'api_key': '${NOT_SET_ANYWHERE}'}})

    def test_empty_yaml_gives_defaults(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        settings = load_settings(str(config_file))

        assert settings.exchange.product_code == "BTC_JPY"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))
