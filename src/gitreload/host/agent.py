"""In-process agent host.

AgentHost runs a configuration document by building a set of components
from it. A reload tears every component down (the reload manager that
asked for it included), validates and loads the target document, and
builds a fresh component graph. If the target cannot be loaded the host
falls back to the document it was running before, so a bad revision
never leaves the agent without a configuration.

Documents may pull in other YAML files through a top-level ``includes``
list. Included files are merged first; keys in the including document
take precedence.

Usage:
    from gitreload.host.agent import run_agent

    settings = create_settings(Path("settings.yaml"))
    asyncio.run(run_agent(settings, Path("agent.yaml")))
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import structlog

from gitreload.core.config import Settings, WatchConfig, load_yaml_file, merge_configs
from gitreload.core.exceptions import ConfigurationError, ReloadRejected
from gitreload.protocols.repository import RepositoryAccessProtocol
from gitreload.reload.manager import GitReloadManager
from gitreload.staging.composer import INCLUDES_KEY
from gitreload.staging.store import StagingStore


log = structlog.get_logger()


class Component(Protocol):
    """A unit the host builds from its configuration."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...


ComponentFactory = Callable[["AgentHost", Dict[str, Any]], Component]
DocumentLoader = Callable[[Path], Dict[str, Any]]


def load_document(path: Path) -> Dict[str, Any]:
    """Load a YAML document and resolve its ``includes``.

    Relative include paths resolve against the including document's
    directory. Includes are not followed recursively.

    Raises:
        ConfigurationError: If the document or an include is missing,
            is not valid YAML, or ``includes`` is malformed.
    """
    path = Path(path)
    document = load_yaml_file(path)

    includes = document.pop(INCLUDES_KEY, None) or []
    if isinstance(includes, str):
        includes = [includes]
    if not isinstance(includes, list):
        raise ConfigurationError(
            config_path=str(path),
            key=INCLUDES_KEY,
            message=f"'{INCLUDES_KEY}' in {path} must be a list of paths",
        )

    layers: list[Dict[str, Any]] = []
    for entry in includes:
        include_path = Path(str(entry)).expanduser()
        if not include_path.is_absolute():
            include_path = path.parent / include_path
        layers.append(load_yaml_file(include_path))

    return merge_configs(*layers, document)


class AgentHost:
    """Reference HostBridge implementation.

    Attributes:
        document_path: Document the agent is currently running.
        config: Loaded configuration of that document.
        components: Components built from it.
        reload_count: Number of successful reloads.
    """

    def __init__(
        self,
        document_path: Path,
        factories: Sequence[ComponentFactory],
        loader: DocumentLoader = load_document,
    ) -> None:
        self._document_path = Path(document_path).absolute()
        self._factories = list(factories)
        self._loader = loader
        self._config: Dict[str, Any] = {}
        self._components: list[Component] = []
        self._lock = asyncio.Lock()
        self._reload_task: Optional[asyncio.Task] = None
        self._in_progress = False
        self._succeeded = False
        self._target_path: Optional[str] = None
        self._reload_count = 0

    @property
    def document_path(self) -> Path:
        return self._document_path

    @property
    def config(self) -> Dict[str, Any]:
        return self._config

    @property
    def components(self) -> list[Component]:
        return list(self._components)

    @property
    def reload_count(self) -> int:
        return self._reload_count

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the document and build all components.

        Raises:
            ConfigurationError: If the document cannot be loaded.
        """
        config = self._loader(self._document_path)
        await self._build(config)
        self._config = config
        log.info(
            "agent_started",
            document=str(self._document_path),
            components=len(self._components),
        )

    async def stop(self) -> None:
        """Wait for any in-flight reload, then tear everything down."""
        if self._reload_task is not None and not self._reload_task.done():
            await asyncio.gather(self._reload_task, return_exceptions=True)
        await self._teardown()
        log.info("agent_stopped", document=str(self._document_path))

    async def wait_for_reload(self) -> None:
        """Block until the last requested reload has finished."""
        if self._reload_task is not None:
            await asyncio.gather(self._reload_task, return_exceptions=True)

    async def _build(self, config: Dict[str, Any], paused: bool = False) -> None:
        built: list[Component] = []
        try:
            for factory in self._factories:
                component = factory(self, config)
                if paused:
                    component.pause()
                await component.start()
                built.append(component)
        except Exception:
            for component in reversed(built):
                await self._stop_component(component)
            raise
        self._components = built

    async def _teardown(self) -> None:
        components, self._components = self._components, []
        for component in reversed(components):
            await self._stop_component(component)

    @staticmethod
    async def _stop_component(component: Component) -> None:
        try:
            await component.stop()
        except Exception as e:
            log.warning("component_stop_failed", component=type(component).__name__, error=str(e))

    # ------------------------------------------------------------------
    # HostBridge
    # ------------------------------------------------------------------

    def request_reload(self, document_path: str) -> None:
        """Schedule a reload onto ``document_path`` and return immediately.

        Raises:
            ReloadRejected: A reload is already running, the document
                does not exist, or there is no event loop to run it on.
        """
        if self._in_progress:
            raise ReloadRejected(document_path, reason="reload already in progress")
        target = Path(document_path).absolute()
        if not target.is_file():
            raise ReloadRejected(document_path, reason="document not found")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise ReloadRejected(document_path, reason="no running event loop") from e

        self._in_progress = True
        self._succeeded = False
        self._target_path = str(target)
        self._reload_task = loop.create_task(self._reload(target), name="gitreload-agent-reload")
        self._reload_task.add_done_callback(self._handle_reload_done)
        log.info("agent_reload_scheduled", target=str(target))

    def reload_in_progress(self) -> bool:
        return self._in_progress

    def last_reload_succeeded(self) -> bool:
        return self._succeeded

    def last_reload_target_path(self) -> Optional[str]:
        return self._target_path

    def current_document_path(self) -> str:
        return str(self._document_path)

    def pause_polling(self) -> None:
        for component in self._components:
            component.pause()

    def resume_polling(self) -> None:
        for component in self._components:
            component.resume()

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    async def _reload(self, target: Path) -> None:
        async with self._lock:
            previous_path, previous_config = self._document_path, self._config
            log.info("agent_reload_started", current=str(previous_path), target=str(target))
            await self._teardown()

            try:
                config = self._loader(target)
                await self._build(config, paused=True)
            except Exception as e:
                log.error("agent_reload_failed", target=str(target), error=str(e))
                self._succeeded = False
                await self._restore(previous_path, previous_config)
                return

            self._document_path = target
            self._config = config
            self._succeeded = True
            self._in_progress = False
            self._reload_count += 1
            log.info("agent_reload_completed", document=str(target))
            self.resume_polling()

    async def _restore(self, path: Path, config: Dict[str, Any]) -> None:
        try:
            await self._build(config, paused=True)
        finally:
            self._in_progress = False
        log.info("agent_reload_reverted", document=str(path))
        self.resume_polling()

    @staticmethod
    def _handle_reload_done(task: asyncio.Task) -> None:
        """Log exceptions escaping the reload task."""
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.critical("agent_reload_crashed", error=str(e))


def reload_manager_factory(
    watch: WatchConfig,
    repository: Optional[RepositoryAccessProtocol] = None,
) -> ComponentFactory:
    """Component factory building a GitReloadManager bound to the host."""

    def factory(host: AgentHost, config: Dict[str, Any]) -> GitReloadManager:
        return GitReloadManager(watch, host, repository=repository)

    return factory


def resolve_startup_document(watch: WatchConfig, bootstrap_path: Path) -> Path:
    """Pick the document to start on: the committed candidate, else the bootstrap.

    Only pointers are read here; repair is left to the manager's startup
    recovery.
    """
    store = StagingStore(watch.configs_path, watch.document_suffix)
    current = store.current_path
    if current is not None and current.is_file():
        return current
    return Path(bootstrap_path)


async def run_agent(
    settings: Settings,
    bootstrap_path: Path,
    repository: Optional[RepositoryAccessProtocol] = None,
) -> None:
    """Run an agent with git-driven reloads until SIGINT/SIGTERM.

    SIGHUP reloads the document currently running.
    """
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    document = resolve_startup_document(settings.watch, bootstrap_path)
    host = AgentHost(document, [reload_manager_factory(settings.watch, repository)])

    def shutdown_handler(signum: int) -> None:
        sig_name = signal.Signals(signum).name
        log.info("shutdown_signal_received", signal=sig_name)
        shutdown_event.set()

    def sighup_handler() -> None:
        log.info("sighup_received", action="config_reload")
        try:
            host.request_reload(host.current_document_path())
        except ReloadRejected as e:
            log.warning("sighup_reload_rejected", error=str(e), **e.context)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: shutdown_handler(s))
    if hasattr(signal, "SIGHUP"):
        loop.add_signal_handler(signal.SIGHUP, sighup_handler)

    await host.start()
    try:
        await shutdown_event.wait()
    finally:
        await host.stop()
