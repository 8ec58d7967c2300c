from .base import StorageBackend
from .sqlite_backend import SQLiteBackend

# from .postgres_backend import PostgresBackend  # (future)


def get_storage_backend(db_type="sqlite", connect=True, **kwargs) -> StorageBackend:
    """Build a backend by name; it comes back connected unless connect=False."""
    if db_type == "sqlite":
        backend = SQLiteBackend(**kwargs)
    # elif db_type == "postgres":
    #     backend = PostgresBackend(**kwargs)
    else:
        raise ValueError(f"Unsupported DB type: {db_type}")
    if connect:
        backend.connect()
    return backend
