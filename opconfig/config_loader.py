"""
Configuration loader with secret store resolution.
Renders a TOML template, resolves op() secret lookups and caches the result
for the lifetime of the process.
"""

import asyncio
import copy
import os
import threading
import time
import tomllib
from typing import Any, Dict, Mapping, Optional, Set

from opconfig.crypto.crypto_box import CryptoBox
from opconfig.errors import ConfigParseError, LoadTimeout, NotLoadedYet
from opconfig.logging_config import ConfigLogger
from opconfig.options import LoaderOptions, LoaderSettings
from opconfig.services.source_selector import ORIGIN_OVERRIDE, SourceSelector
from opconfig.storage.cache_store import CacheStore
from opconfig.util.template_renderer import TemplateRenderer
from opconfig.vault.secret_resolver import ClientFactory, SecretResolver


def parse_document(rendered: str) -> Dict[str, Any]:
    try:
        return tomllib.loads(rendered)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML in rendered configuration: {e}") from e


class LoaderState:
    """
    Process-wide resolved configuration.

    Empty at process start, written once by the first successful load and
    read-only afterwards. reset() exists for test harnesses only.
    """

    def __init__(self):
        self._config: Optional[Dict[str, Any]] = None

    @property
    def loaded(self) -> bool:
        return self._config is not None

    def publish(self, config: Dict[str, Any]):
        if self._config is None:
            self._config = config

    def snapshot(self) -> Dict[str, Any]:
        if self._config is None:
            raise NotLoadedYet("Configuration has not been loaded yet, call load_async() first")
        return copy.deepcopy(self._config)

    def peek(self) -> Optional[Dict[str, Any]]:
        return self._config

    def reset(self):
        self._config = None


class SyncBridge:
    """
    Runs coroutines on a dedicated event-loop thread and blocks the caller
    on the resulting future.

    Only valid within the process that performs the load; forked workers
    that did not run the load do not share its state.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=loop.run_forever, name="opconfig-loader", daemon=True)
                thread.start()
                self._loop, self._thread = loop, thread
            return self._loop

    def run(self, coro):
        loop = self._ensure_loop()
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("load_sync() cannot be called from the loader's own event loop")
        return asyncio.run_coroutine_threadsafe(coro, loop).result()

    def close(self):
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=5)
            loop.close()


_state = LoaderState()
_bridge = SyncBridge()


class ConfigLoader:
    """
    Loads the resolved configuration once per process.

    Concurrent load_async() calls on one loader share a single in-flight
    pipeline. Every caller receives an independent deep copy.
    """

    _instance = None

    def __init__(
        self,
        options: Optional[LoaderOptions] = None,
        client_factories: Optional[Mapping[str, ClientFactory]] = None,
    ):
        self._options = options or LoaderOptions()
        self._client_factories = client_factories
        self._logger = ConfigLogger.get_instance()
        self._inflight: Optional[asyncio.Task] = None
        self._cache_writes: Set[asyncio.Task] = set()

    @classmethod
    def get_instance(cls) -> "ConfigLoader":
        """Returns the shared loader instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls):
        """Forget the loaded configuration. Test harnesses only."""
        _state.reset()
        _bridge.close()
        cls._instance = None

    @property
    def options(self) -> LoaderOptions:
        return self._options

    async def load_async(self, bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """
        Load the configuration, or return the already loaded one.

        Args:
            bindings: Template variables layered over the environment and
                LoaderOptions.extra_bindings. Ignored once loaded.

        Raises:
            OpCacheIVMissing, ServiceTokenMissing: Before any I/O
            ConfigPathMissing, ClientInitError: Fatal configuration errors
            SecretFetchError: The secret store could not be reached
            TemplateError, ConfigParseError: The document is malformed
            LoadTimeout: No result within timeout_seconds
        """
        if _state.loaded:
            return _state.snapshot()

        settings = LoaderSettings.from_env()
        settings.require_cache_iv()
        settings.require_service_token()

        loop = asyncio.get_running_loop()
        task = self._inflight
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._run_pipeline(settings, bindings))
            task.add_done_callback(self._on_settled)
            self._inflight = task

        started = time.monotonic()
        warning = loop.call_later(self._options.slow_warning_seconds, self._warn_if_pending, task)
        try:
            config = await asyncio.wait_for(asyncio.shield(task), timeout=self._options.timeout_seconds)
        except asyncio.TimeoutError:
            if self._inflight is task:
                # The abandoned attempt may still finish; its result is discarded
                self._inflight = None
            raise LoadTimeout(f"Config read timed out after {self._options.timeout_seconds:g} seconds")
        finally:
            warning.cancel()

        _state.publish(config)
        self._logger.log_info(f"Config read took {(time.monotonic() - started) * 1000:.0f}ms")
        return _state.snapshot()

    def load_sync(self, bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Blocking variant of load_async() for synchronous startup code."""
        if _state.loaded:
            return _state.snapshot()
        config = _bridge.run(self.load_async(bindings))
        # The bridge thread is a daemon; finish the cache write before the caller can exit
        _bridge.run(self.flush())
        return config

    def read_already_loaded(self) -> Dict[str, Any]:
        """
        Return the configuration produced by an earlier load.

        Raises:
            NotLoadedYet: If no load has succeeded in this process
        """
        return _state.snapshot()

    def _on_settled(self, task: asyncio.Task):
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            self._logger.log_debug(f"Config load attempt failed: {task.exception()!r}")

    def _warn_if_pending(self, task: asyncio.Task):
        if not task.done():
            self._logger.log_warning(
                "Config read is taking too long, this may indicate a problem with "
                "the secret store connection or config file"
            )

    def _bindings(self, bindings: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged = dict(os.environ)
        merged.update(self._options.extra_bindings)
        merged.update(bindings or {})
        return merged

    async def _run_pipeline(
        self,
        settings: LoaderSettings,
        bindings: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        token = settings.require_service_token()
        crypto_box = CryptoBox(settings.require_cache_iv())

        cache_store = CacheStore(
            self._options.resolve_path(self._options.cache_file_path),
            crypto_box,
            token,
            ttl_seconds=settings.cache_ttl_seconds,
        )
        resolver = SecretResolver(
            token,
            descriptor_path=self._options.resolve_path(self._options.descriptor_path),
            client_factories=self._client_factories,
        )
        selector = SourceSelector(
            self._options.resolve_path(self._options.override_file_path),
            settings.config_path,
            resolver,
            cache_store,
        )

        try:
            raw = await selector.obtain_raw_document()
            rendered = await TemplateRenderer(resolver).render(raw.text, self._bindings(bindings))
        finally:
            resolver.close()

        if settings.debug_dump:
            self._logger.log_info(f"Rendered configuration (contains secrets):\n{rendered}")

        config = parse_document(rendered)

        # Only op() values are cached; the document is fetched on every load
        secrets = {path: value for path, value in resolver.path_cache.items() if path != settings.config_path}
        fetched = [path for path in resolver.fetched_paths if path != settings.config_path]
        if raw.origin != ORIGIN_OVERRIDE and fetched and cache_store.enabled:
            self._schedule_persist(cache_store, secrets)

        return config

    def _schedule_persist(self, cache_store: CacheStore, secrets: Dict[str, str]):
        task = asyncio.get_running_loop().create_task(cache_store.persist(secrets))
        self._cache_writes.add(task)
        task.add_done_callback(self._cache_writes.discard)

    async def flush(self):
        """Wait for cache writes started by earlier loads to finish."""
        if self._cache_writes:
            await asyncio.gather(*self._cache_writes)

    # Accessors over the loaded configuration

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Top-level configuration key
            default: Default value if key not found or nothing is loaded

        Returns:
            Configuration value or default
        """
        config = _state.peek()
        if config is None:
            return default
        return copy.deepcopy(config.get(key, default))

    def get_nested(self, *keys: str, default: Any = None) -> Any:
        """
        Get nested configuration value.

        Args:
            *keys: Path of keys to traverse
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        value = _state.peek()
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default
        return copy.deepcopy(value)


async def load_async(bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    return await ConfigLoader.get_instance().load_async(bindings)


def load_sync(bindings: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    return ConfigLoader.get_instance().load_sync(bindings)


def read_already_loaded() -> Dict[str, Any]:
    return ConfigLoader.get_instance().read_already_loaded()
