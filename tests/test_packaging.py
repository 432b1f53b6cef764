"""
Package discovery for the installable distribution.
"""
from pathlib import Path

from setuptools import find_namespace_packages

ROOT = Path(__file__).resolve().parent.parent
INCLUDE = ["core*", "models*", "schemas*", "services*", "routers*", "prompts*"]


def test_plain_directories_are_installed():
    packages = find_namespace_packages(where=str(ROOT), include=INCLUDE)

    for name in ("core", "models", "schemas", "services", "routers", "prompts", "prompts.chat"):
        assert name in packages
    assert not any(name.startswith("tests") for name in packages)


def test_pyproject_uses_namespace_discovery():
    pyproject = (ROOT / "pyproject.toml").read_text(encoding="utf-8")

    assert "namespaces = true" in pyproject
    for pattern in INCLUDE:
        assert f'"{pattern}"' in pyproject
