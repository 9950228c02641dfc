"""
Discovery and compilation of the template cache map.

Every content fragment found under the content directories is compiled
together with the full set of shared layouts, because a fragment does not
know which layout will drive it. The layout is picked at render time by
entry point name.
"""
import logging
import os
import stat
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from ..config.configuration import CacheConfiguration, ensure_cache_config
from ..error.exceptions import BuildCancelledError, CompileError, DiscoveryError, ErrorContext
from .engine import CompiledUnit, compile_unit
from .helpers import merge_helpers

logger = logging.getLogger(__name__)

@dataclass
class BuildResult:
    """Outcome of one build pass."""
    templates: Dict[str, CompiledUnit]
    layouts: List[str] = field(default_factory=list)
    # key -> error, only populated under the permissive compile policy
    failures: Dict[str, CompileError] = field(default_factory=dict)
    # (key, replaced path, winning path)
    collisions: List[Tuple[str, str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _is_directory(path: Path, operation: str) -> bool:
    """
    Report whether ``path`` is a directory; missing paths are not.

    Raises:
        DiscoveryError: If the path exists but cannot be inspected
    """
    try:
        return stat.S_ISDIR(os.stat(path).st_mode)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as e:
        raise DiscoveryError(
            f"Error reading template path {path}: {e}",
            context=ErrorContext("builder", operation),
            details={"path": str(path)},
        ) from e


def discover_layouts(config: CacheConfiguration) -> List[Path]:
    """
    Resolve the shared layout fragments, sorted by file name.

    A missing layouts directory yields no layouts.

    Raises:
        DiscoveryError: If the layouts directory cannot be listed
    """
    layouts_path = config.layouts_path
    if not _is_directory(layouts_path, "discover_layouts"):
        return []
    try:
        with os.scandir(layouts_path) as entries:
            return sorted(
                Path(entry.path) for entry in entries
                if entry.name.endswith(config.suffix) and entry.is_file()
            )
    except FileNotFoundError:
        return []
    except OSError as e:
        raise DiscoveryError(
            f"Error listing layouts in {layouts_path}: {e}",
            context=ErrorContext("builder", "discover_layouts"),
            details={"path": str(layouts_path)},
        ) from e


def iter_content_fragments(config: CacheConfiguration) -> Iterator[Tuple[str, Path]]:
    """
    Yield ``(content_dir, path)`` for each fragment, directories in configured order.

    Raises:
        DiscoveryError: If the walk meets a path it cannot read
    """
    def on_error(error: OSError):
        raise DiscoveryError(
            f"Error walking template directory: {error}",
            context=ErrorContext("builder", "iter_content_fragments"),
            details={"path": getattr(error, "filename", None)},
        ) from error

    for content_dir, top in zip(config.content_dirs, config.content_paths()):
        if not _is_directory(top, "iter_content_fragments"):
            logger.debug(f"Content directory not found, skipping: {top}")
            continue

        for root, dirs, files in os.walk(top, onerror=on_error):
            dirs.sort()
            for name in sorted(files):
                if name.endswith(config.suffix):
                    yield content_dir, Path(root) / name


def derive_key(config: CacheConfiguration, content_dir: str, path: Path) -> str:
    """Lookup key for a content fragment."""
    if config.namespace_keys:
        relative = path.relative_to(config.template_dir / content_dir).as_posix()
        return f"{content_dir}/{relative[:-len(config.suffix)]}"
    return path.name[:-len(config.suffix)]


def build_templates(
    config: Optional[Any] = None,
    helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BuildResult:
    """
    Build a fresh cache map from the fragments on disk.

    Args:
        config: CacheConfiguration or a mapping of its fields
        helpers: Caller helpers merged over the built-ins
        cancel_event: Set to abandon the build before the next fragment

    Returns:
        BuildResult holding the new map

    Raises:
        DiscoveryError: If the template root is missing or a path is unreadable
        BuildCancelledError: If ``cancel_event`` was set
        CompileError: If a fragment fails to compile under the strict policy
    """
    config = ensure_cache_config(config)
    root = config.template_dir
    if not _is_directory(root, "build_templates"):
        raise DiscoveryError(
            f"Template directory not found: {root}",
            context=ErrorContext("builder", "build_templates"),
            details={"path": str(root)},
        )

    layouts = discover_layouts(config)
    merged_helpers = merge_helpers(helpers)
    result = BuildResult(templates={}, layouts=[str(p) for p in layouts])
    sources: Dict[str, Path] = {}

    for content_dir, path in iter_content_fragments(config):
        if cancel_event is not None and cancel_event.is_set():
            raise BuildCancelledError(
                "Template build cancelled",
                context=ErrorContext("builder", "build_templates"),
                details={"built": len(result.templates)},
            )

        key = derive_key(config, content_dir, path)
        try:
            unit = compile_unit(
                [path] + layouts,
                merged_helpers,
                suffix=config.suffix,
                autoescape=config.autoescape,
                strict_undefined=config.strict_undefined,
                trim_blocks=config.trim_blocks,
                lstrip_blocks=config.lstrip_blocks,
                encoding=config.encoding,
            )
        except CompileError as e:
            e.details.setdefault("key", key)
            e.details.setdefault("path", str(path))
            if config.compile_policy == "strict":
                raise
            logger.warning(f"Skipping template {key}: {e}", extra={"template_key": key})
            result.failures[key] = e
            continue

        if key in sources:
            logger.warning(
                f"Template key {key} from {path} replaces {sources[key]}",
                extra={"template_key": key},
            )
            result.collisions.append((key, str(sources[key]), str(path)))
        sources[key] = path
        result.templates[key] = unit

    logger.info(
        f"Built {len(result.templates)} templates from {root} with {len(layouts)} layouts",
        extra={"template_dir": str(root), "unit_count": len(result.templates)},
    )
    if result.failures:
        logger.warning(f"{len(result.failures)} templates failed to compile: {sorted(result.failures)}")
    return result
