"""
Template cache serving render requests by key.
"""
import io
import itertools
import logging
import threading
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..config.configuration import CacheConfiguration, ensure_cache_config
from ..error.exceptions import ErrorContext, TemplateCacheError, UnknownTemplateError
from .builder import BuildResult, build_templates
from .engine import CompiledUnit

logger = logging.getLogger(__name__)

class CacheSnapshot:
    """
    One published, read-only generation of the cache map.

    All lookups made through a snapshot see the same map, regardless of
    invalidations published after it was taken.
    """

    def __init__(self, templates: Mapping[str, CompiledUnit], encoding: str = "utf-8", built_at: Optional[datetime] = None):
        self._templates = MappingProxyType(dict(templates))
        self.encoding = encoding
        self.built_at = built_at or datetime.now()

    @property
    def templates(self) -> Mapping[str, CompiledUnit]:
        return self._templates

    def keys(self) -> List[str]:
        return sorted(self._templates)

    def has_template(self, key: str) -> bool:
        return key in self._templates

    def get(self, key: str) -> CompiledUnit:
        """
        Look up the compiled unit for ``key``.

        Raises:
            UnknownTemplateError: If the key is not in this snapshot
        """
        try:
            return self._templates[key]
        except KeyError:
            raise UnknownTemplateError(key, context=ErrorContext("TemplateCache", "get")) from None

    def render(self, sink, key: str, data: Any = None) -> None:
        """Render the content fragment stored under ``key`` into ``sink``."""
        unit = self.get(key)
        self._execute(unit, key, unit.name, sink, data)

    def render_with_layout(self, sink, key: str, layout: str, data: Any = None) -> None:
        """Render ``key`` driven by the bundled layout ``layout``."""
        unit = self.get(key)
        self._execute(unit, key, layout, sink, data)

    def render_multiple(self, sink, keys: Iterable[str], data: Any = None) -> None:
        """
        Render several keys in order against the same data.

        The first failure stops the sequence; output of the keys rendered
        before it remains in the sink.
        """
        for key in keys:
            self.render(sink, key, data)

    def render_to_string(self, key: str, data: Any = None, layout: Optional[str] = None) -> str:
        buffer = io.BytesIO()
        if layout:
            self.render_with_layout(buffer, key, layout, data)
        else:
            self.render(buffer, key, data)
        return buffer.getvalue().decode(self.encoding)

    def _execute(self, unit: CompiledUnit, key: str, entry_point: str, sink, data: Any) -> None:
        try:
            unit.execute(entry_point, sink, data, encoding=self.encoding)
        except TemplateCacheError as e:
            e.details.setdefault("key", key)
            logger.debug(f"Render of {key} via {entry_point} failed: {e}",
                         extra={"template_key": key, "entry_point": entry_point})
            raise

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, key: str) -> bool:
        return key in self._templates


class TemplateCache:
    """
    Owns the published cache snapshot and rebuilds it on invalidation.

    Construct once and share between request handlers. Renders read the
    snapshot reference once per call; ``invalidate`` builds a new map off
    to the side and publishes it with a single reference swap.
    """

    def __init__(
        self,
        config: Optional[Any] = None,
        helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Build the cache.

        Args:
            config: CacheConfiguration or a mapping of its fields
            helpers: Helper functions added to the built-ins; caller helpers
                replace built-ins of the same name
            cancel_event: Optional event that abandons the initial build

        Raises:
            DiscoveryError: If the template tree cannot be walked
            CompileError: If a fragment fails under the strict policy
        """
        self.config: CacheConfiguration = ensure_cache_config(config)
        self.helpers: Dict[str, Callable[..., Any]] = dict(helpers or {})
        self.last_error: Optional[TemplateCacheError] = None
        self._publish_lock = threading.Lock()
        self._build_sequence = itertools.count(1)
        self._published_sequence = 0
        result = build_templates(self.config, self.helpers, cancel_event=cancel_event)
        self.last_result: BuildResult = result
        self._snapshot: CacheSnapshot = CacheSnapshot(result.templates, encoding=self.config.encoding)

    def snapshot(self) -> CacheSnapshot:
        """Current published snapshot."""
        return self._snapshot

    def keys(self) -> List[str]:
        return self._snapshot.keys()

    def has_template(self, key: str) -> bool:
        return self._snapshot.has_template(key)

    def render(self, sink, key: str, data: Any = None) -> None:
        """
        Render the template stored under ``key`` into ``sink``.

        Args:
            sink: Writable byte stream
            key: Template key (content file name without suffix)
            data: Template data

        Raises:
            UnknownTemplateError: If ``key`` is not cached; nothing is written
            ExecutionError: If rendering fails; partial output is not removed
        """
        self._snapshot.render(sink, key, data)

    def render_with_layout(self, sink, key: str, layout: str, data: Any = None) -> None:
        """
        Render ``key`` through the layout entry point ``layout``.

        Raises:
            UnknownTemplateError: If ``key`` is not cached
            ExecutionError: If the layout is not bundled or rendering fails
        """
        self._snapshot.render_with_layout(sink, key, layout, data)

    def render_multiple(self, sink, keys: Iterable[str], data: Any = None) -> None:
        self._snapshot.render_multiple(sink, keys, data)

    def render_to_string(self, key: str, data: Any = None, layout: Optional[str] = None) -> str:
        return self._snapshot.render_to_string(key, data, layout)

    def invalidate(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Rebuild the cache from disk and publish it.

        On failure the previous snapshot keeps serving; the error is logged
        and kept in ``last_error``. When invalidations overlap, a build is
        only published if no build started after it has been published
        already.

        Returns:
            False if the rebuild failed
        """
        with self._publish_lock:
            sequence = next(self._build_sequence)

        try:
            result = build_templates(self.config, self.helpers, cancel_event=cancel_event)
        except TemplateCacheError as e:
            with self._publish_lock:
                if sequence > self._published_sequence:
                    self.last_error = e
            logger.error(f"Template cache invalidation failed, keeping previous templates: {e}")
            return False

        snapshot = CacheSnapshot(result.templates, encoding=self.config.encoding)
        with self._publish_lock:
            if sequence < self._published_sequence:
                logger.debug(f"Discarding build {sequence}, build {self._published_sequence} already published")
                return True
            self._snapshot = snapshot
            self._published_sequence = sequence
            self.last_result = result
            self.last_error = None

        logger.info(f"Template cache invalidated, serving {len(snapshot)} templates",
                    extra={"unit_count": len(snapshot)})
        return True

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, key: str) -> bool:
        return self.has_template(key)
