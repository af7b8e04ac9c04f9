"""Unit tests for bridge state and bootstrap."""

import pytest

from inkbridge.config import Config, ConfigurationError
from inkbridge.config.schema import BridgeConfig
from inkbridge.platforms.adapters.teams import TeamsAdapter
from inkbridge.platforms.handler import IncomingHandler
from inkbridge.platforms.runtime import bootstrap, create_adapters, create_backend, shutdown
from inkbridge.platforms.state import (
    get_bridge_state,
    has_bridge_state,
    init_bridge_state,
    reset_bridge_state,
)


class TestBridgeState:
    """Tests for the process-wide state lifecycle."""

    def test_get_before_init(self):
        """Test that the state must be initialized first."""
        with pytest.raises(RuntimeError, match="not initialized"):
            get_bridge_state()

    def test_init_is_idempotent(self, fake_backend):
        """Test that a second init returns the existing state."""
        first = init_bridge_state(fake_backend)
        second = init_bridge_state(fake_backend, BridgeConfig(response_mode="poll"))

        assert first is second
        assert second.settings.response_mode == "stream"
        assert get_bridge_state() is first

    def test_reset(self, fake_backend):
        """Test resetting the global state."""
        init_bridge_state(fake_backend)
        reset_bridge_state()

        assert has_bridge_state() is False

    def test_settings_applied(self, fake_backend):
        """Test that bridge settings reach the components."""
        state = init_bridge_state(
            fake_backend, BridgeConfig(dedup_capacity=10, min_flush_interval=2.0)
        )

        assert state.dedup.capacity == 10
        assert state.buffer._min_interval == 2.0

    def test_create_handler(self, fake_backend):
        """Test that handlers share the state's components."""
        state = init_bridge_state(fake_backend, BridgeConfig(response_mode="poll"))

        handler = state.create_handler("telegram")

        assert isinstance(handler, IncomingHandler)
        assert handler.adapter_key == "telegram"
        assert handler._dedup is state.dedup
        assert handler._response_mode == "poll"


class TestCreateAdapters:
    """Tests for building adapters from configuration."""

    def test_nothing_enabled(self):
        """Test the default configuration."""
        assert create_adapters(Config()) == {}

    def test_teams_enabled(self):
        """Test building the Teams adapter."""
        config = Config.model_validate(
            {"platforms": {"teams": {"enable": True, "client_id": "c", "access_token": "at"}}}
        )

        adapters = create_adapters(config)

        assert isinstance(adapters["teams"], TeamsAdapter)

    def test_telegram_without_token_skipped(self):
        """Test that Telegram without bot token is not built."""
        config = Config.model_validate({"platforms": {"telegram": {"enable": True}}})

        assert create_adapters(config) == {}

    def test_unknown_platform_filter(self):
        """Test filtering by an unknown platform."""
        with pytest.raises(ConfigurationError, match="Unknown platform"):
            create_adapters(Config(), platform_filter="slack")

    def test_filter_for_disabled_platform(self):
        """Test filtering by a platform that is not enabled."""
        with pytest.raises(ConfigurationError, match="not configured or not enabled"):
            create_adapters(Config(), platform_filter="teams")

    def test_create_backend(self):
        """Test backend settings."""
        config = Config.model_validate({"backend": {"base_url": "http://10.0.0.2:4096"}})

        assert create_backend(config).base_url == "http://10.0.0.2:4096"


class TestBootstrap:
    """Tests for bootstrap and shutdown."""

    @pytest.mark.asyncio
    async def test_bootstrap_starts_adapters_and_listener(self, fake_backend, fake_adapter):
        """Test a stream mode start."""
        state = await bootstrap(Config(), backend=fake_backend, adapters={"fake": fake_adapter})

        assert state.mux.get("fake") is fake_adapter
        assert fake_adapter.is_running
        assert isinstance(fake_adapter._handler, IncomingHandler)
        assert state.listener.is_running

        await shutdown()

        assert fake_adapter.stop_calls == 1
        assert fake_backend.closed is True
        assert has_bridge_state() is False

    @pytest.mark.asyncio
    async def test_poll_mode_skips_listener(self, fake_backend, fake_adapter):
        """Test that poll mode does not open the event stream."""
        config = Config.model_validate({"bridge": {"response_mode": "poll"}})

        state = await bootstrap(config, backend=fake_backend, adapters={"fake": fake_adapter})

        assert not state.listener.is_running
        await shutdown()

    @pytest.mark.asyncio
    async def test_bootstrap_twice_reuses_state(self, fake_backend, adapter_factory):
        """Test that a second bootstrap replaces the adapter but keeps the components."""
        first_adapter, second_adapter = adapter_factory(), adapter_factory()

        first = await bootstrap(Config(), backend=fake_backend, adapters={"fake": first_adapter})
        listener_task = first.listener._task
        second = await bootstrap(Config(), backend=fake_backend, adapters={"fake": second_adapter})

        assert first is second
        assert second.listener._task is listener_task
        assert first_adapter.stop_calls == 1
        assert second.mux.get("fake") is second_adapter

        await shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_without_state(self):
        """Test that shutdown is a no-op before bootstrap."""
        await shutdown()

        assert has_bridge_state() is False
