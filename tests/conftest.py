"""Pytest configuration and fixtures for Kiln tests."""

from pathlib import Path

import pytest

from kiln import Environment


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Directory for template files written by a test."""
    directory = tmp_path / "templates"
    directory.mkdir()
    return directory


@pytest.fixture
def env(tmp_path: Path) -> Environment:
    """Create a basic Kiln Environment (no cache, builds on every render)."""
    return Environment(build_root=tmp_path / "build", timeout=60)


@pytest.fixture
def cached_env(tmp_path: Path) -> Environment:
    """Create a Kiln Environment with a binary cache."""
    return Environment(
        cache_dir=tmp_path / "cache" / "templates",
        build_root=tmp_path / "build",
        timeout=60,
    )


@pytest.fixture
def write(template_dir: Path):
    """Write a file into ``template_dir`` and return its path."""

    def _write(name: str, content: str) -> Path:
        path = template_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
