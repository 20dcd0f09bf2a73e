from __future__ import annotations

from pathlib import Path

import tomllib


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def test_version_is_single_source_of_truth_across_repo() -> None:
    """
    Prevent "trust drift" in public-facing version surfaces.

    Canonical source of truth: `nbdocs/_version.py`.
    """
    from nbdocs import __version__ as package_version
    from nbdocs._version import __version__ as canonical_version

    assert package_version == canonical_version

    # Packaging must derive version dynamically (no manual duplication)
    pyproject = tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text(encoding="utf-8"))
    assert pyproject["project"]["dynamic"] == ["version"]
    assert pyproject["tool"]["setuptools"]["dynamic"]["version"]["attr"] == "nbdocs._version.__version__"

    # README should match canonical (communication cohesion)
    readme = (PROJECT_ROOT / "README.md").read_text(encoding="utf-8")
    assert f"**Version**: {canonical_version}" in readme
