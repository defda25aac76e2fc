"""
Version utility for Scribe.

Reads the installed package metadata, falling back to pyproject.toml when
running from a source checkout.
"""

from pathlib import Path


def get_version() -> str:
    """
    Get the Scribe version.

    Priority:
    1. importlib.metadata.version() - when installed as a package
    2. pyproject.toml - when running from source

    Returns:
        Version string (e.g., "0.1.0") or "dev" if unavailable
    """
    try:
        from importlib.metadata import version

        return version("scribe-audio")
    except Exception:
        pass

    # Fallback: read from pyproject.toml
    try:
        import tomllib

        pyproject_path = None
        for parent in Path(__file__).resolve().parents:
            potential_path = parent / "pyproject.toml"
            if potential_path.exists():
                pyproject_path = potential_path
                break

        if pyproject_path is not None:
            with open(pyproject_path, "rb") as f:
                data = tomllib.load(f)
            return data.get("project", {}).get("version", "dev")
    except Exception:
        pass

    return "dev"


__version__ = get_version()
