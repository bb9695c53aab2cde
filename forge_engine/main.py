"""Main entry point for Forge Engine."""

import argparse
import asyncio
import importlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from forge_engine import __version__
from forge_engine.agents import AgentEngine, AgentRunner
from forge_engine.ai import ProviderRegistry, ToolExecutor
from forge_engine.automations import ActionExecutor, AutomationEngine
from forge_engine.config.features import FeatureFlags
from forge_engine.config.settings import Settings
from forge_engine.events.bus import EventBus
from forge_engine.exceptions import ConfigurationError, MissingConfigError
from forge_engine.gateway import BoardGateway
from forge_engine.scheduler.scheduler import JobScheduler
from forge_engine.storage.facade import Storage
from forge_engine.triggers import TriggerRegistry
from forge_engine.utils.constants import (
    APP_DESCRIPTION,
    APP_NAME,
    SHUTDOWN_GRACE_SECONDS,
)


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging."""
    level = logging.DEBUG if debug else logging.INFO

    # Configure standard logging
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
    )

    # Keep normal runs readable; allow deep third-party logs only in --debug mode.
    noisy_loggers = (
        "httpx",
        "httpcore",
        "apscheduler",
        "aiosqlite",
    )
    noisy_level = logging.DEBUG if debug else logging.WARNING
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(noisy_level)

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if not debug
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME}: {APP_DESCRIPTION}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version", action="version", version=f"{APP_NAME} {__version__}"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    parser.add_argument("--config-file", type=Path, help="Path to configuration file")

    parser.add_argument(
        "--env",
        choices=("development", "testing", "production"),
        help="Environment overrides to apply (defaults to $ENVIRONMENT)",
    )

    return parser.parse_args()


def load_gateway(import_path: Optional[str], **wiring: Any) -> BoardGateway:
    """Build the board gateway from a ``module:factory`` import path.

    The factory is called with ``wiring`` as keyword arguments so the CRUD
    service can publish events and keep trigger registrations current.
    """
    if not import_path:
        raise MissingConfigError(
            "BOARD_GATEWAY must name a 'module:factory' returning a BoardGateway"
        )

    module_name, _, attr = import_path.partition(":")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load board gateway '{import_path}': {e}") from e

    gateway = factory(**wiring)
    if not isinstance(gateway, BoardGateway):
        raise ConfigurationError(
            f"Board gateway factory '{import_path}' did not return a BoardGateway"
        )
    return gateway


async def create_application(
    config: Settings, gateway: Optional[BoardGateway] = None
) -> Dict[str, Any]:
    """Create and configure the application components.

    The gateway factory named by ``BOARD_GATEWAY`` receives the event bus and
    both trigger registries. Those only exist once the engines are built, so
    the executors are bound to the gateway afterwards.
    """
    logger = structlog.get_logger()
    logger.info("Creating application components")

    features = FeatureFlags(config)

    if not features.ai_enabled:
        logger.warning("No AI provider configured, agent runs and ai_step will fail")

    # Initialize storage system
    storage = Storage(config.database_url, config.agent_default_max_actions)
    await storage.initialize()

    providers = ProviderRegistry.from_settings(config)
    event_bus = EventBus(max_listeners=config.event_bus_max_listeners)
    scheduler = JobScheduler() if features.scheduler_enabled else None

    action_executor = ActionExecutor(
        gateway,
        providers,
        ai_step_max_tokens=config.ai_step_max_tokens,
        webhook_timeout=config.webhook_timeout_seconds,
    )
    automation_engine = AutomationEngine(storage, action_executor)

    tool_executor = ToolExecutor(gateway)
    agent_runner = AgentRunner(
        storage,
        providers,
        tool_executor,
        max_tokens=config.agent_max_tokens,
        max_rounds=config.agent_max_rounds,
        run_timeout=config.agent_run_timeout_seconds,
    )
    agent_engine = AgentEngine(storage, agent_runner)

    automation_triggers = TriggerRegistry(event_bus, automation_engine, scheduler)
    agent_triggers = TriggerRegistry(event_bus, agent_engine, scheduler)

    if gateway is None:
        try:
            gateway = load_gateway(
                config.board_gateway,
                event_bus=event_bus,
                automation_triggers=automation_triggers,
                agent_triggers=agent_triggers,
            )
        except ConfigurationError:
            await action_executor.close()
            await providers.close()
            await storage.close()
            raise
        action_executor.gateway = gateway
        tool_executor.gateway = gateway

    logger.info("Application components created successfully")

    return {
        "config": config,
        "features": features,
        "gateway": gateway,
        "storage": storage,
        "providers": providers,
        "event_bus": event_bus,
        "scheduler": scheduler,
        "action_executor": action_executor,
        "automation_engine": automation_engine,
        "agent_engine": agent_engine,
        "automation_triggers": automation_triggers,
        "agent_triggers": agent_triggers,
    }


async def run_application(app: Dict[str, Any]) -> None:
    """Run the application with graceful shutdown handling."""
    logger = structlog.get_logger()
    storage: Storage = app["storage"]
    providers: ProviderRegistry = app["providers"]
    event_bus: EventBus = app["event_bus"]
    scheduler: Optional[JobScheduler] = app["scheduler"]
    action_executor: ActionExecutor = app["action_executor"]
    agent_engine: AgentEngine = app["agent_engine"]
    automation_triggers: TriggerRegistry = app["automation_triggers"]
    agent_triggers: TriggerRegistry = app["agent_triggers"]

    # Set up signal handlers for graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info("Shutdown signal received", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("Starting Forge Engine")

        await automation_triggers.init_listeners()
        await agent_triggers.init_listeners()

        if scheduler:
            await scheduler.start()
            logger.info("Job scheduler enabled")

        await shutdown_event.wait()

    except Exception as e:
        logger.error("Application error", error=str(e))
        raise
    finally:
        # Ordered shutdown: scheduler -> listeners -> bus -> runs -> clients -> storage
        logger.info("Shutting down application")

        try:
            if scheduler:
                await scheduler.stop()
            await automation_triggers.shutdown()
            await agent_triggers.shutdown()
            await event_bus.stop(timeout=SHUTDOWN_GRACE_SECONDS)
            await agent_engine.shutdown()
            await action_executor.close()
            await providers.close()
            await storage.close()
        except Exception as e:
            logger.error("Error during shutdown", error=str(e))

        logger.info("Application shutdown complete")


async def main() -> None:
    """Main application entry point."""
    args = parse_args()
    setup_logging(debug=args.debug)

    logger = structlog.get_logger()
    logger.info("Starting Forge Engine", version=__version__)

    try:
        # Load configuration
        from forge_engine.config import load_config

        config = load_config(env=args.env, config_file=args.config_file)
        features = FeatureFlags(config)

        logger.info(
            "Configuration loaded",
            enabled_features=features.get_enabled_features(),
            debug=config.debug,
        )

        app = await create_application(config)
        await run_application(app)

    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        sys.exit(1)


def run() -> None:
    """Synchronous entry point for setuptools."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
