"""Single source of truth for all configuration.

All modules import from here, never from os.environ directly.

Values are resolved, highest priority first, from the process environment,
``config/<APP_ENV>.env`` and ``.env`` under the project root. Relative paths
are taken relative to the project root.
"""

import os
from pathlib import Path

from dotenv import dotenv_values

PROJECT_ROOT = Path(
    os.environ.get("DIRKEEPER_PROJECT_ROOT") or Path(__file__).resolve().parent.parent
)

APP_ENV = os.environ.get("APP_ENV", "development")


def load_env_file(path: str | Path) -> dict[str, str | None]:
    """Load a plain .env file, or nothing if it does not exist."""
    path = Path(path)
    if not path.exists():
        return {}
    return dict(dotenv_values(path))


def _load() -> dict[str, str | None]:
    values = load_env_file(PROJECT_ROOT / ".env")
    values.update(load_env_file(PROJECT_ROOT / "config" / f"{APP_ENV}.env"))
    values.update({k: v for k, v in os.environ.items() if k.startswith("DIRKEEPER_")})
    return values


def _resolve(path: str) -> str:
    """Anchor a relative path at the project root."""
    p = Path(path)
    return str(p if p.is_absolute() else PROJECT_ROOT / p)


_settings = _load()

# --- Catalog ---
CATALOG_DB_PATH: str = _resolve(
    _settings.get("DIRKEEPER_CATALOG_DB_PATH") or str(Path("data") / "dirkeeper.db")
)
# Optional SQL script replacing the built-in schema
CATALOG_INIT_SQL: str = (
    _resolve(_settings["DIRKEEPER_CATALOG_INIT_SQL"])
    if _settings.get("DIRKEEPER_CATALOG_INIT_SQL")
    else ""
)

# --- Explorer ---
LIST_DEPTH: int = int(_settings.get("DIRKEEPER_LIST_DEPTH") or "1")
