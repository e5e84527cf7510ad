"""Docker machine controller.

Reconciles the state that lives outside any Kubernetes cluster: whether the
Docker engine is running, and Docker Desktop's own Kubernetes toggle and CPU
allocation. Docker Desktop keeps that in a private settings store, and every
settings write restarts the engine, so writes are funneled through a single
path and only happen when something actually changes.
"""
import logging
import sys
import threading
import time
from typing import Any, Dict, Optional, TextIO

from ..config import ClusterkitConfig, get_config
from ..utils import RetryError, SleepFunc, wait_until
from .engine import (
    SETTING_CPU,
    SETTING_K8S_ENABLED,
    DesktopClient,
    EngineClient,
    host_os,
)
from .errors import EngineUnavailableError
from .models import Cluster, Product

logger = logging.getLogger("clusterkit.machine")


class DockerMachine:
    """Starts the engine and applies Docker Desktop settings."""

    def __init__(
        self,
        engine: EngineClient,
        desktop: DesktopClient,
        os_name: Optional[str] = None,
        sleep: SleepFunc = time.sleep,
        err_out: Optional[TextIO] = None,
        cancel: Optional[threading.Event] = None,
        config: Optional[ClusterkitConfig] = None,
    ):
        self.engine = engine
        self.desktop = desktop
        self.os_name = os_name or host_os()
        self.sleep = sleep
        self.err_out = err_out or sys.stderr
        self.cancel = cancel
        self.config = (config or get_config()).engine
        self.settings_write_count = 0

    def is_desktop_platform(self) -> bool:
        """Docker Desktop manages the engine on macOS and Windows."""
        return self.os_name in ("darwin", "windows")

    def engine_running(self) -> bool:
        try:
            self.engine.server_version()
            return True
        except Exception as e:
            logger.debug(f"Docker engine not reachable: {e}")
            return False

    def engine_cpus(self) -> int:
        """CPUs visible to the engine, 0 if unknown."""
        try:
            return self.engine.info().ncpu
        except Exception as e:
            logger.debug(f"Reading engine info failed: {e}")
            return 0

    def start(self) -> None:
        """Make sure the engine answers, launching Docker Desktop if needed."""
        if self.engine_running():
            return

        if not self.is_desktop_platform():
            raise EngineUnavailableError(
                "Not connected to Docker Engine. Start the Docker daemon and try again.")

        logger.info("Docker engine not running, launching Docker Desktop")
        self.desktop.launch()
        try:
            self._wait_for_engine(self.config.start_attempts, "Docker Desktop to start")
        except RetryError as e:
            raise EngineUnavailableError(f"Docker Desktop did not start: {e}") from e

    def ensure_k8s_enabled(self, settings: Dict[str, Any]) -> bool:
        """Turn on Kubernetes in the settings blob.

        Returns:
            bool: True if the blob changed and must be written
        """
        if settings.get(SETTING_K8S_ENABLED) is True:
            return False
        settings[SETTING_K8S_ENABLED] = True
        return True

    def ensure_min_cpu(self, settings: Dict[str, Any], desired: int) -> bool:
        """Raise the CPU allocation to at least ``desired``. Never lowers it.

        Returns:
            bool: True if the blob changed and must be written
        """
        if desired <= 0:
            return False
        current = settings.get(SETTING_CPU)
        if current is not None and int(current) >= desired:
            return False
        settings[SETTING_CPU] = desired
        return True

    def reconcile(self, desired: Cluster) -> bool:
        """Apply Kubernetes and CPU settings for ``desired``.

        Returns:
            bool: True if settings were written and the engine restarted
        """
        if not self.is_desktop_platform():
            if desired.min_cpus > 0:
                cpus = self.engine_cpus()
                if cpus < desired.min_cpus:
                    raise ValueError(
                        f"Cannot automatically set minimum CPU to {desired.min_cpus} on this platform "
                        f"(engine has {cpus})")
            return False

        settings = self.desktop.read_settings()
        k8s_changed = False
        if desired.product == Product.DOCKER_DESKTOP.value:
            k8s_changed = self.ensure_k8s_enabled(settings)
        cpu_changed = self.ensure_min_cpu(settings, desired.min_cpus)
        if not (k8s_changed or cpu_changed):
            logger.debug("Docker Desktop settings already satisfied")
            return False

        self.write_settings(settings)
        return True

    def disable_k8s(self) -> bool:
        """Turn off Docker Desktop's Kubernetes. No-op if already off."""
        settings = self.desktop.read_settings()
        if settings.get(SETTING_K8S_ENABLED) is not True:
            return False
        settings[SETTING_K8S_ENABLED] = False
        self.write_settings(settings)
        return True

    def write_settings(self, settings: Dict[str, Any]) -> None:
        """The only place settings are written. Blocks until the engine is back."""
        self.desktop.write_settings(settings)
        self.settings_write_count += 1
        logger.info(f"Wrote Docker Desktop settings: {settings}")
        self.wait_for_restart()

    def wait_for_restart(self) -> None:
        attempts = self.config.restart_wait_attempts
        wait_secs = attempts * self.config.poll_interval
        self.err_out.write(
            f"Applied new Docker Desktop settings. Waiting {wait_secs:g}s for Docker Desktop to restart...\n")
        # Give the backend a moment to take the engine down before polling
        self.sleep(self.config.settings_settle_delay)
        try:
            self._wait_for_engine(attempts, "Docker Desktop restart")
        except RetryError as e:
            raise EngineUnavailableError(f"Docker Desktop restart: {e}") from e

    def _wait_for_engine(self, attempts: int, description: str) -> None:
        def answered() -> bool:
            self.engine.server_version()
            return True

        wait_until(
            answered,
            attempts=attempts,
            interval=self.config.poll_interval,
            sleep=self.sleep,
            cancel=self.cancel,
            description=description,
        )
