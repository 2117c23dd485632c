"""Runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DATA_DIR_ENV = "TAGGED_TABLES_DATA_DIR"
BACKUP_DIR_ENV = "TAGGED_TABLES_BACKUP_DIR"
LOG_LEVEL_ENV = "TAGGED_TABLES_LOG_LEVEL"


@dataclass
class Settings:
    """Where databases and backups live, and how loudly to log."""

    data_dir: Path = field(default_factory=lambda: Path("./databases"))
    backup_dir: Path = field(default_factory=lambda: Path("./backup"))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get(DATA_DIR_ENV):
            settings.data_dir = Path(env[DATA_DIR_ENV])
        if env.get(BACKUP_DIR_ENV):
            settings.backup_dir = Path(env[BACKUP_DIR_ENV])
        if env.get(LOG_LEVEL_ENV):
            settings.log_level = env[LOG_LEVEL_ENV].upper()
        return settings

    def override(
        self,
        data_dir: Path | str | None = None,
        backup_dir: Path | str | None = None,
        log_level: str | None = None,
    ) -> Settings:
        """Return a copy with any explicitly given values replaced."""
        return Settings(
            data_dir=Path(data_dir) if data_dir is not None else self.data_dir,
            backup_dir=Path(backup_dir) if backup_dir is not None else self.backup_dir,
            log_level=log_level.upper() if log_level is not None else self.log_level,
        )
