"""
SLA External Service Integrations
=================================

External services for SLA tracking:
- YAML config file watcher (watchdog hot reload)
- APScheduler for the periodic breach snapshot
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ticketflow.core import ConfigurationException
from ticketflow.infrastructure.database import get_session_context
from ticketflow.shared.infrastructure.grafana import get_grafana_exporter
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ISLAConfigProvider, SLAService
from ticketflow.sla.domain import BreachReport, SLAConfig
from ticketflow.sla.infrastructure.repositories import (
    RegistryStatusCatalog,
    SQLAlchemyActorDirectory,
    SQLAlchemyTicketSlaRepository,
)

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. A broken file on reload keeps the
    previous configuration in place.
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config: Optional[SLAConfig] = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: file exists but is not a valid SLA config
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA configuration in {path}",
                {"path": str(path), "error": str(e)}
            ) from e

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload SLA config, keeping previous",
                extra={"path": str(self._path), "error": e.details.get("error")}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "SLA configuration reloaded",
            extra={"path": str(self._path), "policies": len(new_config.policies)}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if:
        - File doesn't exist (defaults are in use)
        - Running somewhere inotify doesn't work
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static config",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_config(self) -> SLAConfig:
        return self.config


# Process-wide manager; main.py loads it during startup
sla_config_manager = SLAConfigManager()


def get_sla_config_manager() -> SLAConfigManager:
    return sla_config_manager


class BreachSnapshotJob:
    """
    Periodic breach report over every stored ticket.

    The report is logged and, when Grafana is configured, pushed as gauges.
    """

    def __init__(
        self,
        config_provider: ISLAConfigProvider,
        service_factory: Optional[Callable[..., SLAService]] = None
    ):
        self._config_provider = config_provider
        self._service_factory = service_factory

    def _build_service(self, session) -> SLAService:
        if self._service_factory is not None:
            return self._service_factory(session)

        return SLAService(
            SQLAlchemyTicketSlaRepository(session),
            SQLAlchemyActorDirectory(session),
            RegistryStatusCatalog(session),
            self._config_provider,
        )

    async def run(self) -> BreachReport:
        async with get_session_context() as session:
            report = await self._build_service(session).aggregate()

        exporter = get_grafana_exporter()
        if exporter is not None:
            await exporter.export_breach_report(report)

        logger.info(
            "Breach snapshot completed",
            extra={
                "total": report.total,
                "overdue": report.overdue_count,
                "l2_overdue": report.l2_overdue_count,
                "rules_fired": report.rules_fired,
                "sla_met_percent": round(report.sla_met_percent, 1),
            }
        )
        return report

    async def __call__(self) -> None:
        try:
            await self.run()
        except Exception as e:
            # errors never propagate into the scheduler
            logger.error("Breach snapshot failed", extra={"error": str(e)}, exc_info=True)


class SLAScheduler:
    """
    Wrapper for APScheduler for the background breach snapshot.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_snapshot",
            name="SLA Breach Snapshot Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
