from functools import lru_cache

from khata.core.config import settings
from khata.repositories.base import MarkRepository, RosterRepository
from khata.repositories.json_store import JsonMarkRepository, JsonRosterRepository
from khata.repositories.memory import InMemoryMarkRepository, InMemoryRosterRepository


# one instance per process, used as FastAPI dependencies

@lru_cache()
def get_roster_repository() -> RosterRepository:
    if settings.storage_backend == "json":
        return JsonRosterRepository(settings.storage_dir)
    return InMemoryRosterRepository()


@lru_cache()
def get_mark_repository() -> MarkRepository:
    if settings.storage_backend == "json":
        return JsonMarkRepository(settings.storage_dir)
    return InMemoryMarkRepository()
