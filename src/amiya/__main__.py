# src/amiya/__main__.py
import argparse
import asyncio
import signal
import sys
import traceback
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from amiya.core.app_state import AppState
from amiya.core.system_monitor import SystemMonitor
from amiya.core.workspace_poller import WorkspacePoller
from amiya.ipc.server import CommandServer
from amiya.models.config import AmiyaConfig
from amiya.utils.exceptions import ConfigurationError, InitializationError
from amiya.utils.helpers import APP_VERSION, config_dir, resolve_socket_path
from amiya.utils.logging import get_logger, setup_logging

DEFAULT_CONFIG = """
logging:
  level: "INFO"
  file: null
  max_size: 10
  backup_count: 5
  format: "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"

events:
  capacity: 256

ipc:
  socket_path: null
  read_timeout: 5.0

backends:
  connect_retries: 3
  retry_delay: 1.0
  audio:
    enabled: true
  backlight:
    enabled: true
    device_root: "/sys/class/backlight"
    preferred: ["intel_backlight", "amdgpu_bl0", "radeon_bl0", "acpi_video0"]
  battery:
    enabled: true
    poll_interval: 30
  bluetooth:
    enabled: true
    timeout: 10
  network:
    enabled: true
    timeout: 10
  media:
    enabled: true
    poll_interval: 2
  power:
    enabled: true
    timeout: 10

system_monitor:
  enabled: true
  cpu_interval: 2
  temperature_interval: 5

compositor:
  enabled: true
  poll_interval: 2
"""


class ConfigManager:
    """Manages configuration loading and validation"""

    @staticmethod
    def load_config(config_path: Path) -> AmiyaConfig:
        """Load and validate configuration from YAML file"""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError:
            raise ConfigurationError(f"Error parsing configuration file: {traceback.format_exc()}")
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}")

        if config is None:
            return AmiyaConfig()
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file is empty or incorrectly formatted")
        try:
            return AmiyaConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")


def default_config_path() -> Path:
    return config_dir() / "config.yml"


def create_default_config(config_path: Path) -> bool:
    """Create default configuration file if it doesn't exist"""
    if config_path.exists():
        return False
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG.lstrip())
    return True


class AmiyaApp:
    """Main Amiya daemon: owns the registry, the command server and the background loops"""

    def __init__(self, config_path: Path):
        self.logger = get_logger("Main App")
        try:
            self.config = ConfigManager.load_config(config_path)
        except ConfigurationError as e:
            self.logger.error(f"Configuration error, using defaults: {e}")
            self.config = AmiyaConfig()
        setup_logging(self.config.logging.model_dump())

        self.shutdown_event = asyncio.Event()
        self.app_state = AppState.from_config(self.config)

        # Components to be initialized later
        self.command_server: Optional[CommandServer] = None
        self.system_monitor: Optional[SystemMonitor] = None
        self.workspace_poller: Optional[WorkspacePoller] = None
        self._tasks: List[asyncio.Task] = []

    async def initialize_components(self):
        """Initialize all application components"""
        # Backends connect in the background; the server answers from cached state meanwhile
        self.app_state.start_connections(
            retries=self.config.backends.connect_retries,
            retry_delay=self.config.backends.retry_delay,
        )

        socket_path = resolve_socket_path(self.config.ipc.socket_path, create_parent=True)
        self.command_server = CommandServer(
            self.app_state,
            socket_path,
            read_timeout=self.config.ipc.read_timeout,
        )
        await self.command_server.start()

        if self.config.system_monitor.enabled:
            self.system_monitor = SystemMonitor(self.config.system_monitor, self.app_state.event_manager)
        if self.app_state.niri is not None:
            self.workspace_poller = WorkspacePoller(
                self.app_state.niri,
                self.app_state.event_manager,
                interval=self.config.compositor.poll_interval,
            )

        self.logger.info("All components initialized successfully")

    def start_background_tasks(self):
        """Start the command server and every periodic loop"""
        jobs = [("command-server", self.command_server.serve_forever())]
        if self.system_monitor:
            jobs.append(("system-monitor", self.system_monitor.start_monitoring()))
        if self.workspace_poller:
            jobs.append(("workspace-poller", self.workspace_poller.start_polling()))
        if self.app_state.battery:
            jobs.append(("battery-monitor", self.app_state.battery.start_monitoring()))
        if self.app_state.media:
            jobs.append(("media-monitor", self.app_state.media.start_monitoring()))

        for name, job in jobs:
            task = asyncio.create_task(job, name=name)
            task.add_done_callback(self._task_finished)
            self._tasks.append(task)

    def _task_finished(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Background task {task.get_name()} failed: {error!r}")

    async def shutdown(self):
        """Gracefully shutdown all components"""
        self.logger.info("Initiating shutdown sequence")
        try:
            if self.system_monitor:
                await self.system_monitor.stop()
            if self.workspace_poller:
                await self.workspace_poller.stop()
            if self.app_state.battery:
                await self.app_state.battery.stop_monitoring()
            if self.app_state.media:
                await self.app_state.media.stop_monitoring()

            for task in self._tasks:
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []

            if self.command_server:
                await self.command_server.stop()
            await self.app_state.shutdown()
            self.logger.info("Shutdown completed successfully")
        except Exception:
            self.logger.error(f"Error during shutdown: {traceback.format_exc()}")

    def handle_signals(self):
        """Set up signal handlers for graceful shutdown"""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum.name}")
            self.shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler, sig)

    async def run(self):
        """Main application entry point"""
        self.logger.info(f"Starting Amiya {APP_VERSION}")
        try:
            self.handle_signals()
            await self.initialize_components()
            self.start_background_tasks()
            await self.shutdown_event.wait()
        except InitializationError:
            self.logger.error(f"Initialization error: {traceback.format_exc()}")
            await self.shutdown()
            sys.exit(1)
        except Exception:
            self.logger.error(f"Unexpected error: {traceback.format_exc()}")
            await self.shutdown()
            sys.exit(1)
        await self.shutdown()


def main():
    """Application entry point"""
    parser = argparse.ArgumentParser(prog="amiya", description="Amiya desktop shell daemon")
    parser.add_argument("--config", type=Path, help="Path of the YAML configuration file")
    args = parser.parse_args()

    config_path = args.config or default_config_path()
    if args.config is None and create_default_config(config_path):
        print(f"Created default config at {config_path}")

    app = AmiyaApp(config_path)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
