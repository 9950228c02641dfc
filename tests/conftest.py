"""Pytest configuration and fixtures."""
import pytest
from pathlib import Path
from template_cache.config import CacheConfiguration
from template_cache.templates import TemplateCache

FRAGMENTS = {
    "layouts/base.tmpl": "<main>{% include content_fragment %}</main>",
    "layouts/shell.tmpl": "<body>{% block body %}{% endblock %}</body>",
    "includes/page.tmpl": "Hello {{ name }}",
    "includes/article.tmpl": '{% extends "shell.tmpl" %}{% block body %}Article by {{ name }}{% endblock %}',
    "includes/nested/rows.tmpl": "{% for item in items %}{{ oddoreven(loop.index) }}:{{ item }};{% endfor %}",
    "includes/welcome.tmpl": "includes welcome",
    "mail/welcome.tmpl": "mail welcome {{ name }}",
    "mail/reset.tmpl": "Reset for {{ name }}",
}

def write_fragments(root: Path, fragments: dict) -> None:
    """Write fragment sources below root, without trailing newlines."""
    for rel_path, source in fragments.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")

@pytest.fixture
def make_tree():
    """Return a helper writing a fragment tree below a root directory."""
    return write_fragments

@pytest.fixture
def template_root(tmp_path):
    """Create a template tree with layouts, includes and mail fragments."""
    root = tmp_path / "templates"
    write_fragments(root, FRAGMENTS)
    return root

@pytest.fixture
def config(template_root):
    """Create a test configuration pointing at the template tree."""
    return CacheConfiguration(template_dir=template_root)

@pytest.fixture
def cache(config):
    """Create a built template cache."""
    return TemplateCache(config)
