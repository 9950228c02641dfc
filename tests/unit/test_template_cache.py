import io
import os
import threading
import pytest
from template_cache.templates import TemplateCache, CacheSnapshot
from template_cache.error.exceptions import (
    CompileError,
    DiscoveryError,
    ExecutionError,
    UnknownTemplateError,
)

def test_cache_initialization(cache: TemplateCache):
    """Every content fragment is cached under its base name."""
    assert cache.keys() == ["article", "page", "reset", "rows", "welcome"]
    for key in ("page", "article", "rows", "welcome", "reset"):
        assert cache.has_template(key)
    assert not cache.has_template("base")
    assert not cache.has_template("page.tmpl")
    assert len(cache) == 5

def test_render_standalone(cache: TemplateCache):
    """Test rendering a fragment by its own name."""
    sink = io.BytesIO()
    cache.render(sink, "page", {"name": "Ada"})
    assert sink.getvalue() == b"Hello Ada"

def test_render_escapes_values(cache: TemplateCache):
    assert cache.render_to_string("page", {"name": "<b>"}) == "Hello &lt;b&gt;"

def test_render_with_layout(cache: TemplateCache):
    """Test a layout driving the content fragment of the unit."""
    sink = io.BytesIO()
    cache.render_with_layout(sink, "page", "base", {"name": "Ada"})
    assert sink.getvalue() == b"<main>Hello Ada</main>"

def test_render_with_layout_file_name(cache: TemplateCache):
    assert cache.render_to_string("reset", {"name": "Bob"}, layout="base.tmpl") == "<main>Reset for Bob</main>"

def test_render_extending_fragment(cache: TemplateCache):
    """A content fragment can extend a bundled layout."""
    assert cache.render_to_string("article", {"name": "Ada"}) == "<body>Article by Ada</body>"

def test_render_uses_helpers(cache: TemplateCache):
    output = cache.render_to_string("rows", {"items": ["a", "b", "c"]})
    assert output == "odd:a;even:b;odd:c;"

def test_render_unknown_key(cache: TemplateCache):
    """Unknown keys raise a typed error and write nothing."""
    sink = io.BytesIO()
    with pytest.raises(UnknownTemplateError) as exc_info:
        cache.render(sink, "nonexistent", {})
    assert exc_info.value.key == "nonexistent"
    assert sink.getvalue() == b""

def test_render_with_layout_unknown_key(cache: TemplateCache):
    sink = io.BytesIO()
    with pytest.raises(UnknownTemplateError):
        cache.render_with_layout(sink, "nonexistent", "base", {})
    assert sink.getvalue() == b""

def test_render_with_unknown_layout(cache: TemplateCache):
    sink = io.BytesIO()
    with pytest.raises(ExecutionError) as exc_info:
        cache.render_with_layout(sink, "page", "missing", {"name": "Ada"})
    assert exc_info.value.key == "page"
    assert sink.getvalue() == b""

def test_render_missing_variable(cache: TemplateCache):
    """Undefined data is an execution error carrying the engine message."""
    with pytest.raises(ExecutionError) as exc_info:
        cache.render(io.BytesIO(), "page", {})
    assert "name" in str(exc_info.value)
    assert exc_info.value.__cause__ is not None

def test_render_multiple(cache: TemplateCache):
    sink = io.BytesIO()
    cache.render_multiple(sink, ["page", "reset"], {"name": "Ada"})
    assert sink.getvalue() == b"Hello AdaReset for Ada"

def test_render_multiple_stops_at_first_failure(cache: TemplateCache):
    """Output from keys rendered before the failure stays in the sink."""
    sink = io.BytesIO()
    with pytest.raises(UnknownTemplateError):
        cache.render_multiple(sink, ["page", "nonexistent", "reset"], {"name": "Ada"})
    assert sink.getvalue() == b"Hello Ada"

def test_render_to_text_sink(cache: TemplateCache):
    sink = io.StringIO()
    cache.render(sink, "page", {"name": "Ada"})
    assert sink.getvalue() == "Hello Ada"

def test_key_collision_last_directory_wins(cache: TemplateCache):
    """includes/ and mail/ share one key space; mail/ is walked last."""
    assert cache.render_to_string("welcome", {"name": "Ada"}) == "mail welcome Ada"
    collisions = cache.last_result.collisions
    assert len(collisions) == 1
    key, replaced, winner = collisions[0]
    assert key == "welcome"
    assert replaced.endswith("includes/welcome.tmpl")
    assert winner.endswith("mail/welcome.tmpl")

def test_namespaced_keys(template_root):
    cache = TemplateCache({"template_dir": template_root, "namespace_keys": True})
    assert cache.keys() == [
        "includes/article",
        "includes/nested/rows",
        "includes/page",
        "includes/welcome",
        "mail/reset",
        "mail/welcome",
    ]
    assert cache.render_to_string("includes/welcome") == "includes welcome"
    assert cache.render_to_string("mail/welcome", {"name": "Ada"}) == "mail welcome Ada"
    assert cache.last_result.collisions == []

def test_caller_helpers_override_builtins(template_root):
    cache = TemplateCache({"template_dir": template_root}, helpers={"oddoreven": lambda i: "row"})
    assert cache.render_to_string("rows", {"items": ["a", "b"]}) == "row:a;row:b;"

def test_missing_template_dir(tmp_path):
    with pytest.raises(DiscoveryError):
        TemplateCache({"template_dir": tmp_path / "absent"})

def test_strict_compile_error(template_root):
    (template_root / "includes" / "broken.tmpl").write_text("{% if %}")
    with pytest.raises(CompileError) as exc_info:
        TemplateCache({"template_dir": template_root})
    assert exc_info.value.key == "broken"
    assert exc_info.value.path.endswith("broken.tmpl")

def test_permissive_compile_error(template_root):
    (template_root / "includes" / "broken.tmpl").write_text("{% if %}")
    cache = TemplateCache({"template_dir": template_root, "compile_policy": "permissive"})
    assert not cache.has_template("broken")
    assert cache.has_template("page")
    assert list(cache.last_result.failures) == ["broken"]
    assert not cache.last_result.ok

def test_invalidate_picks_up_changes(cache: TemplateCache, template_root):
    (template_root / "includes" / "page.tmpl").write_text("Bye {{ name }}")
    (template_root / "mail" / "invite.tmpl").write_text("Invite {{ name }}")
    (template_root / "includes" / "article.tmpl").unlink()

    assert cache.invalidate() is True
    assert cache.last_error is None
    assert cache.render_to_string("page", {"name": "Ada"}) == "Bye Ada"
    assert cache.has_template("invite")
    assert not cache.has_template("article")

def test_snapshot_keeps_old_content(cache: TemplateCache, template_root):
    """A snapshot taken before invalidation keeps serving the old map."""
    before = cache.snapshot()
    (template_root / "includes" / "page.tmpl").write_text("Bye {{ name }}")

    assert cache.invalidate() is True

    after = cache.snapshot()
    assert isinstance(before, CacheSnapshot)
    assert before is not after
    assert before.render_to_string("page", {"name": "Ada"}) == "Hello Ada"
    assert after.render_to_string("page", {"name": "Ada"}) == "Bye Ada"
    assert cache.render_to_string("page", {"name": "Ada"}) == "Bye Ada"

def test_invalidate_keeps_previous_on_discovery_error(cache: TemplateCache, template_root):
    """A vanished template tree does not empty the cache."""
    template_root.rename(template_root.with_name("moved"))

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, DiscoveryError)
    assert cache.has_template("page")
    assert cache.render_to_string("page", {"name": "Ada"}) == "Hello Ada"

def test_invalidate_keeps_previous_on_unreadable_path(cache: TemplateCache, monkeypatch):
    from template_cache.templates import builder

    def unreadable_walk(top, onerror=None):
        onerror(PermissionError(13, "Permission denied", str(top)))
        return iter([])

    monkeypatch.setattr(builder.os, "walk", unreadable_walk)

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, DiscoveryError)
    assert "Permission denied" in str(cache.last_error)
    assert cache.keys() == ["article", "page", "reset", "rows", "welcome"]

def test_invalidate_keeps_previous_on_compile_error(cache: TemplateCache, template_root):
    (template_root / "includes" / "page.tmpl").write_text("{% for %}")

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, CompileError)
    assert cache.render_to_string("page", {"name": "Ada"}) == "Hello Ada"

    (template_root / "includes" / "page.tmpl").write_text("Fixed {{ name }}")
    assert cache.invalidate() is True
    assert cache.last_error is None
    assert cache.render_to_string("page", {"name": "Ada"}) == "Fixed Ada"

def test_concurrent_render_during_invalidate(cache: TemplateCache, template_root):
    """Renders running alongside invalidation only ever see a whole map."""
    outputs = set()
    errors = []
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            try:
                outputs.add(cache.render_to_string("page", {"name": "Ada"}))
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    try:
        for i in range(10):
            (template_root / "includes" / "page.tmpl").write_text(f"v{i} {{{{ name }}}}")
            assert cache.invalidate() is True
    finally:
        stop.set()
        for thread in threads:
            thread.join()

    assert errors == []
    assert outputs <= {"Hello Ada"} | {f"v{i} Ada" for i in range(10)}
    assert cache.render_to_string("page", {"name": "Ada"}) == "v9 Ada"

def _deny(monkeypatch, name, matches):
    """Make os.<name> fail with EACCES for paths selected by ``matches``."""
    from template_cache.templates import builder

    real = getattr(os, name)

    def guarded(path, *args, **kwargs):
        if matches(os.fspath(path)):
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real(path, *args, **kwargs)

    monkeypatch.setattr(builder.os, name, guarded)

def test_invalidate_keeps_previous_on_unreadable_layouts(cache: TemplateCache, monkeypatch):
    """An unreadable layouts directory must not publish layout-less units."""
    layouts = os.fspath(cache.config.layouts_path)
    _deny(monkeypatch, "scandir", lambda path: path == layouts)

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, DiscoveryError)
    assert cache.render_to_string("page", {"name": "Ada"}, layout="base") == "<main>Hello Ada</main>"

def test_invalidate_keeps_previous_on_unreadable_root(cache: TemplateCache, monkeypatch):
    root = os.fspath(cache.config.template_dir)
    _deny(monkeypatch, "stat", lambda path: path.startswith(root))

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, DiscoveryError)
    assert isinstance(cache.last_error.__cause__, PermissionError)
    assert cache.render_to_string("page", {"name": "Ada"}, layout="base") == "<main>Hello Ada</main>"

def test_invalidate_keeps_previous_on_unreadable_content_dir(cache: TemplateCache, monkeypatch):
    includes = os.fspath(cache.config.template_dir / "includes")
    _deny(monkeypatch, "stat", lambda path: path == includes)

    assert cache.invalidate() is False
    assert isinstance(cache.last_error, DiscoveryError)
    assert cache.keys() == ["article", "page", "reset", "rows", "welcome"]

def test_overlapping_invalidations_publish_latest_build(cache: TemplateCache, template_root, monkeypatch):
    """A build that finishes late never replaces a newer published build."""
    from template_cache.templates import cache as cache_module

    real_build = cache_module.build_templates
    first_built = threading.Event()
    release_first = threading.Event()
    calls = []

    def build(*args, **kwargs):
        calls.append(len(calls))
        result = real_build(*args, **kwargs)
        if len(calls) == 1:
            first_built.set()
            release_first.wait(5)
        return result

    monkeypatch.setattr(cache_module, "build_templates", build)
    page = template_root / "includes" / "page.tmpl"
    outcome = {}

    page.write_text("First {{ name }}")
    slow = threading.Thread(target=lambda: outcome.setdefault("slow", cache.invalidate()))
    slow.start()
    assert first_built.wait(5)

    page.write_text("Second {{ name }}")
    assert cache.invalidate() is True
    release_first.set()
    slow.join()

    assert outcome["slow"] is True
    assert cache.render_to_string("page", {"name": "Ada"}) == "Second Ada"
    assert cache.last_result.templates["page"] is cache.snapshot().templates["page"]
    assert cache.last_error is None
