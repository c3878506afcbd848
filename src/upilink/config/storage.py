"""Where upilink keeps its local files: the cache database and the mock ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "upilink"
DEFAULT_DB_FILENAME: Final[str] = "upilink.db"
MOCK_LEDGER_FILENAME: Final[str] = "mock_ledger.json"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME
    mock_ledger_filename: str = MOCK_LEDGER_FILENAME

    def resolve_data_dir(self, *, create: bool = False) -> Path:
        path = self.data_dir.expanduser().resolve()
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def database_path(self, *, ensure: bool = True) -> Path:
        return self.resolve_data_dir(create=ensure) / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"

    def mock_ledger_path(self, *, ensure: bool = True) -> Path:
        """File backing the shared ledger of the ``mock`` registry mode."""
        return self.resolve_data_dir(create=ensure) / self.mock_ledger_filename


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _user_data_home() -> Path:
    # XDG on POSIX, LOCALAPPDATA on Windows
    if os.name == "nt":
        local = os.getenv("LOCALAPPDATA")
        return Path(local) if local else Path.home() / "AppData" / "Local"
    xdg = os.getenv("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    """Read ``UPILINK_DATA_DIR``, defaulting to the per-user data directory."""

    override = os.getenv("UPILINK_DATA_DIR")
    return StorageConfig(data_dir=Path(override) if override else _user_data_home() / APP_DIR_NAME)


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` when set, otherwise the sqlite file in the data directory."""

    if uri := os.getenv("DATABASE_URI"):
        return DatabaseConfig(uri=uri)
    return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())
