"""
Jinja2 backed compilation and execution of fragment groups.

A compiled unit bundles one content fragment with every shared layout in a
private Jinja2 environment. Each fragment is registered under its file name
(``page.tmpl``, ``base.tmpl``) and is an independently executable entry
point. Layouts reach the content fragment of their unit through the
``content_fragment`` global, e.g. ``{% include content_fragment %}``, and a
content fragment may ``{% extends "base.tmpl" %}`` any layout bundled with it.
"""
import io
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from jinja2 import DictLoader, Environment, StrictUndefined, Template, TemplateError, Undefined

from ..error.exceptions import CompileError, ErrorContext, ExecutionError

logger = logging.getLogger(__name__)

CONTENT_FRAGMENT_GLOBAL = "content_fragment"

class CompiledUnit:
    """
    An immutable group of compiled fragments with named entry points.

    The unit keeps no reference to the files it was compiled from.
    """

    __slots__ = ("_name", "_suffix", "_templates", "_sources")

    def __init__(self, name: str, templates: Mapping[str, Template], sources: Iterable[str], suffix: str):
        self._name = name
        self._suffix = suffix
        self._templates = MappingProxyType(dict(templates))
        self._sources = tuple(sources)

    @property
    def name(self) -> str:
        """Entry point of the content fragment itself."""
        return self._name

    @property
    def entry_points(self) -> tuple:
        return tuple(self._templates)

    @property
    def sources(self) -> tuple:
        """Paths of the fragments compiled into this unit, content first."""
        return self._sources

    def resolve(self, entry_point: str) -> Optional[str]:
        """Map an entry point name, with or without suffix, to a fragment name."""
        if entry_point in self._templates:
            return entry_point
        if entry_point + self._suffix in self._templates:
            return entry_point + self._suffix
        return None

    def execute(self, entry_point: str, sink: Union[io.IOBase, Any], data: Any = None, encoding: str = "utf-8") -> None:
        """
        Execute ``entry_point`` against ``data``, streaming output into ``sink``.

        Output already written when a failure occurs stays in the sink.

        Args:
            entry_point: Fragment name, e.g. ``page.tmpl`` or ``base``
            sink: Writable byte stream; text streams receive ``str`` chunks
            data: Mapping unpacked into the template context, or any other
                value exposed as ``data``
            encoding: Encoding applied to output written to byte streams

        Raises:
            ExecutionError: If the entry point is unknown or rendering fails
        """
        name = self.resolve(entry_point)
        if name is None:
            raise ExecutionError(
                f"No entry point {entry_point!r} in unit {self._name!r}",
                context=ErrorContext("CompiledUnit", "execute"),
                details={"entry_point": entry_point, "unit": self._name},
            )

        write = _writer(sink, encoding)
        stream = self._templates[name].generate(_as_context(data))
        while True:
            try:
                chunk = next(stream)
            except StopIteration:
                break
            except Exception as e:
                raise ExecutionError(
                    f"Error executing {name!r} in unit {self._name!r}: {e}",
                    context=ErrorContext("CompiledUnit", "execute"),
                    details={"entry_point": name, "unit": self._name},
                ) from e
            write(chunk)

    def __repr__(self) -> str:
        return f"<CompiledUnit {self._name!r} entry_points={list(self._templates)}>"


def compile_unit(
    files: Iterable[Union[str, Path]],
    helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
    suffix: str = ".tmpl",
    autoescape: bool = True,
    strict_undefined: bool = True,
    trim_blocks: bool = False,
    lstrip_blocks: bool = False,
    encoding: str = "utf-8",
) -> CompiledUnit:
    """
    Compile an ordered list of fragment files into one unit.

    The first file is the content fragment; the rest are layouts. Every
    fragment is parsed eagerly so syntax errors surface here rather than at
    render time.

    Args:
        files: Fragment paths, content fragment first
        helpers: Functions exposed to the fragments as globals
        suffix: Fragment suffix, used to resolve bare entry point names
        autoescape: HTML-escape substituted values
        strict_undefined: Fail on undefined variables instead of rendering empty
        trim_blocks: Jinja2 ``trim_blocks``
        lstrip_blocks: Jinja2 ``lstrip_blocks``
        encoding: Source file encoding

    Returns:
        CompiledUnit named after the content fragment

    Raises:
        CompileError: If a file cannot be read, two fragments share a name,
            or a fragment fails to parse
    """
    paths = [Path(f) for f in files]
    if not paths:
        raise CompileError("Cannot compile an empty fragment list",
                           context=ErrorContext("engine", "compile_unit"))

    content_name = paths[0].name
    sources: Dict[str, str] = {}
    for path in paths:
        if path.name in sources:
            raise CompileError(
                f"Fragment name {path.name!r} appears more than once in unit {content_name!r}",
                context=ErrorContext("engine", "compile_unit"),
                details={"path": str(path)},
            )
        try:
            sources[path.name] = path.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise CompileError(
                f"Error reading fragment {path}: {e}",
                context=ErrorContext("engine", "compile_unit"),
                details={"path": str(path)},
            ) from e

    env = Environment(
        loader=DictLoader(sources),
        autoescape=autoescape,
        undefined=StrictUndefined if strict_undefined else Undefined,
        trim_blocks=trim_blocks,
        lstrip_blocks=lstrip_blocks,
        auto_reload=False,
    )
    env.globals.update(helpers or {})
    env.globals[CONTENT_FRAGMENT_GLOBAL] = content_name

    templates = {}
    for path in paths:
        try:
            templates[path.name] = env.get_template(path.name)
        except TemplateError as e:
            raise CompileError(
                f"Error compiling fragment {path}: {e}",
                context=ErrorContext("engine", "compile_unit"),
                details={"path": str(path)},
            ) from e

    logger.debug(f"Compiled unit {content_name} with {len(templates) - 1} layouts")
    return CompiledUnit(content_name, templates, (str(p) for p in paths), suffix)


def _as_context(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return dict(data)
    return {"data": data}


def _writer(sink: Any, encoding: str) -> Callable[[str], Any]:
    if isinstance(sink, io.TextIOBase):
        return sink.write
    return lambda chunk: sink.write(chunk.encode(encoding))
