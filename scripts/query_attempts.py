import sys

from scripts.file_watcher import DB_PATH
from storage.factory import get_storage_backend


def query(ip=None, limit=10, db_path=DB_PATH):
    backend = get_storage_backend("sqlite", db_path=str(db_path))
    try:
        return backend.query_attempts({"ip": ip, "limit": limit})
    finally:
        backend.close()


def format_row(row) -> str:
    user = row["username"] or "-"
    return f"[{row['attempted_at']}] {row['host']}: {row['ip']} user={user}"


if __name__ == "__main__":
    ip = sys.argv[1] if len(sys.argv) > 1 else None
    for row in query(ip):
        print(format_row(row))
