from __future__ import annotations

from importlib import metadata


def app_version() -> str:
    try:
        return metadata.version("hostwatch")
    except Exception:
        return "0.1.0"
