"""Tests for application wiring."""

from unittest.mock import AsyncMock

import pytest

from forge_engine.config import create_test_config
from forge_engine.events.bus import EventBus
from forge_engine.events.types import ColumnValueChanged
from forge_engine.exceptions import ConfigurationError, MissingConfigError
from forge_engine.gateway import BoardGateway
from forge_engine.main import create_application, load_gateway, parse_args
from forge_engine.triggers import TriggerRegistry


built_gateways = []


def make_gateway(**wiring):
    """Factory resolved by import path in the tests below."""
    gateway = AsyncMock(spec=BoardGateway)
    gateway.wiring = wiring
    built_gateways.append(gateway)
    return gateway


def make_not_a_gateway(**wiring):
    return object()


@pytest.fixture
def config(tmp_path):
    return create_test_config(database_url=f"sqlite:///{tmp_path}/forge.db")


async def shutdown(app) -> None:
    await app["automation_triggers"].shutdown()
    await app["agent_triggers"].shutdown()
    await app["event_bus"].stop()
    await app["agent_engine"].shutdown()
    await app["action_executor"].close()
    await app["providers"].close()
    await app["storage"].close()


def test_help_describes_engine(monkeypatch, capsys) -> None:
    monkeypatch.setattr("sys.argv", ["forge-engine", "--help"])
    with pytest.raises(SystemExit):
        parse_args()
    assert "Automation and AI agent runtime" in capsys.readouterr().out


class TestLoadGateway:
    def test_missing_path(self) -> None:
        with pytest.raises(MissingConfigError):
            load_gateway(None)

    def test_unimportable_module(self) -> None:
        with pytest.raises(ConfigurationError, match="Cannot load board gateway"):
            load_gateway("no_such_module_xyz:factory")

    def test_factory_result_checked(self) -> None:
        with pytest.raises(ConfigurationError, match="did not return a BoardGateway"):
            load_gateway("test_main:make_not_a_gateway")

    def test_loads_factory(self) -> None:
        assert isinstance(load_gateway("test_main:make_gateway"), BoardGateway)

    def test_factory_receives_wiring(self) -> None:
        bus = EventBus()
        gateway = load_gateway("test_main:make_gateway", event_bus=bus)
        assert gateway.wiring == {"event_bus": bus}


class TestCreateApplication:
    """Tests for create_application."""

    async def test_components(self, config, gateway) -> None:
        app = await create_application(config, gateway)
        try:
            assert app["gateway"] is gateway
            assert app["scheduler"] is None
            assert not app["providers"]
            assert await app["storage"].health_check()
        finally:
            await shutdown(app)

    async def test_event_runs_automation(self, config, gateway, make_automation) -> None:
        """A domain event published on the bus runs a registered automation."""
        app = await create_application(config, gateway)
        try:
            storage = app["storage"]
            await storage.automations.create_automation(
                make_automation(
                    trigger={"type": "status_change", "config": {"toValue": "done"}},
                    actions=[{"type": "change_column", "config": {"columnId": "owner", "value": "u9"}}],
                )
            )
            assert await app["automation_triggers"].init_listeners() == 1
            assert await app["agent_triggers"].init_listeners() == 0

            app["event_bus"].emit(
                ColumnValueChanged(
                    board_id="board_1",
                    item_id="item_1",
                    actor_id="user_1",
                    column_id="status",
                    old_value="todo",
                    new_value="done",
                )
            )
            await app["event_bus"].drain()

            assert (await storage.automations.get_automation("auto_1")).run_count == 1
            assert gateway.update_item.await_args.kwargs["emit_events"] is False
        finally:
            await shutdown(app)

    async def test_gateway_factory_wired_to_bus_and_registries(self, tmp_path) -> None:
        """The configured gateway gets the bus and registries the engines use."""
        config = create_test_config(
            database_url=f"sqlite:///{tmp_path}/forge.db",
            board_gateway="test_main:make_gateway",
        )
        app = await create_application(config)
        try:
            gateway = app["gateway"]
            assert gateway is built_gateways[-1]
            assert gateway.wiring["event_bus"] is app["event_bus"]
            assert gateway.wiring["automation_triggers"] is app["automation_triggers"]
            assert gateway.wiring["agent_triggers"] is app["agent_triggers"]
            assert isinstance(gateway.wiring["automation_triggers"], TriggerRegistry)
            assert app["action_executor"].gateway is gateway
        finally:
            await shutdown(app)

    async def test_gateway_emits_reach_automations(self, tmp_path, make_automation) -> None:
        """Events published by the loaded gateway run automations it registered."""
        config = create_test_config(
            database_url=f"sqlite:///{tmp_path}/forge.db",
            board_gateway="test_main:make_gateway",
        )
        app = await create_application(config)
        try:
            gateway = app["gateway"]
            wiring = gateway.wiring
            await app["storage"].automations.create_automation(
                make_automation(
                    trigger={"type": "status_change", "config": {"toValue": "done"}},
                    actions=[{"type": "change_column", "config": {"columnId": "owner", "value": "u9"}}],
                )
            )
            assert await wiring["automation_triggers"].register("auto_1")

            wiring["event_bus"].emit(
                ColumnValueChanged(
                    board_id="board_1",
                    item_id="item_1",
                    actor_id="user_1",
                    column_id="status",
                    old_value="todo",
                    new_value="done",
                )
            )
            await wiring["event_bus"].drain()

            gateway.update_item.assert_awaited_once()
            assert gateway.update_item.await_args.kwargs["emit_events"] is False
        finally:
            await shutdown(app)

    async def test_gateway_load_failure_raises(self, tmp_path) -> None:
        config = create_test_config(
            database_url=f"sqlite:///{tmp_path}/forge.db",
            board_gateway="test_main:make_not_a_gateway",
        )
        with pytest.raises(ConfigurationError):
            await create_application(config)
