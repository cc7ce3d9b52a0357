from .engine import DEFAULT_SQLITE_URL, get_sessionmaker, make_engine
from .metadata import metadata_obj

__all__ = ["DEFAULT_SQLITE_URL", "get_sessionmaker", "make_engine", "metadata_obj"]
