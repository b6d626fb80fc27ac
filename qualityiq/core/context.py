"""Application context: the explicitly constructed owner of settings and the store handle."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from qualityiq.config.settings import QualityIQSettings, load_settings
from qualityiq.core.engine import QualityIQEngine
from qualityiq.core.watch import WatchController
from qualityiq.storage.database import Database
from qualityiq.storage.service import StorageService

__all__ = ["AppContext", "create_context"]


@dataclass
class AppContext:
    settings: QualityIQSettings
    root_dir: Path
    database: Database
    storage: StorageService

    def engine(self) -> QualityIQEngine:
        return QualityIQEngine(self.settings, self.root_dir, storage=self.storage)

    def watcher(self, engine: QualityIQEngine | None = None) -> WatchController:
        return WatchController(engine or self.engine(), self.settings.watch, self.storage)

    def close(self) -> None:
        self.database.dispose()

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_context(
    root_dir: Path | None = None,
    config_path: Path | None = None,
    settings: QualityIQSettings | None = None,
) -> AppContext:
    root = (root_dir or Path.cwd()).resolve()
    if settings is None:
        settings = load_settings(config_path=config_path, search_dir=root)
    db_path = Path(settings.database.path)
    if not db_path.is_absolute():
        db_path = root / db_path
    database = Database.for_path(db_path)
    storage = StorageService(
        database,
        batch_size=settings.database.batch_size,
        max_history_days=settings.database.max_history_days,
        enable_metrics=settings.database.enable_metrics,
    )
    return AppContext(settings=settings, root_dir=root, database=database, storage=storage)
