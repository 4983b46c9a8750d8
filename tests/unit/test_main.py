"""Tests for command-line parsing and the backfill service."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from execution_backfill.config.settings import BackfillSettings
from execution_backfill.errors import ProvisioningError
from execution_backfill.main import BackfillService, apply_overrides, main, parse_args


class TestCommandLine:
    """Flag parsing and overrides."""

    def test_overrides_applied(self):
        args = parse_args(["--product", "ETH_JPY", "--start", "1000", "--proxy-key", "k",
                           "--reqpm", "120", "--log-level", "DEBUG"])

        settings = apply_overrides(BackfillSettings(), args)

        assert settings.exchange.product_code == "ETH_JPY"
        assert settings.exchange.start_id == 1000
        assert settings.proxy.api_key == "k"
        assert settings.rate_limit.requests_per_minute == 120
        assert settings.logging.level == "DEBUG"
        assert settings.proxy.enabled is True

    def test_no_flags_keeps_loaded_values(self):
        settings = apply_overrides(BackfillSettings(), parse_args([]))

        assert settings.exchange.start_id == 636150891
        assert settings.rate_limit.requests_per_minute == 500

    def test_no_proxy_flag(self):
        settings = apply_overrides(BackfillSettings(), parse_args(["--no-proxy"]))

        assert settings.proxy.enabled is False

    @pytest.mark.parametrize("argv", [["--start", "0"], ["--reqpm", "-5"]])
    def test_non_positive_values_rejected(self, argv):
        with pytest.raises(ValueError):
            apply_overrides(BackfillSettings(), parse_args(argv))

    def test_log_level_validated(self):
        settings = apply_overrides(BackfillSettings(), parse_args(["--log-level", "warning"]))
        assert settings.logging.level == "WARNING"

        with pytest.raises(ValidationError):
            apply_overrides(BackfillSettings(), parse_args(["--log-level", "LOUD"]))

    @pytest.mark.parametrize("argv", [
        ["--log-level", "LOUD", "--no-proxy", "--start", "1"],
        ["--start", "0"],
        ["--reqpm", "0"],
    ])
    def test_bad_flag_values_are_usage_errors(self, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(argv)

        assert exc_info.value.code == 2
        assert "usage:" in capsys.readouterr().err

    def test_missing_config_file_is_usage_error(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "nope.yaml")])

        assert exc_info.value.code == 2
        assert "nope.yaml" in capsys.readouterr().err


class TestBackfillService:
    """Provisioning decisions of the service."""

    @pytest.mark.asyncio
    async def test_disabled_proxies_skip_provisioning(self):
        provider = MagicMock()
        provider.fetch_endpoints = AsyncMock()
        service = BackfillService(BackfillSettings(proxy={'enabled': False}), provider=provider)

        assert await service.provision_endpoints() == []
        provider.fetch_endpoints.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provisioning_failure_propagates(self, tmp_path):
        provider = MagicMock()
        provider.fetch_endpoints = AsyncMock(side_effect=ProvisioningError("No proxy available"))
        settings = BackfillSettings(storage={'results_dir': str(tmp_path)})
        service = BackfillService(settings, provider=provider)

        with pytest.raises(ProvisioningError):
            await service.run()

    @pytest.mark.asyncio
    async def test_stop_cancels_run(self):
        service = BackfillService(BackfillSettings(proxy={'enabled': False}))
        started = asyncio.Event()

        async def never_finishes():
            started.set()
            await asyncio.sleep(3600)

        service.run = never_finishes
        task = asyncio.create_task(service.start())
        await started.wait()
        service.stop()

        with pytest.raises(asyncio.CancelledError):
            await task
