from __future__ import annotations

import os

from household_budget.persistence import FileDataStore, SqlDataStore, copy_store


def main() -> None:
    data_dir = os.getenv("DATA_DIR", "./data")
    database_url = os.getenv("DATABASE_URL", "sqlite:///./data/budget.db")
    direction = os.getenv("MIGRATE_DIRECTION", "file-to-sql")

    files = FileDataStore(data_dir)
    sql = SqlDataStore(database_url)
    if direction == "file-to-sql":
        source, target = files, sql
    elif direction == "sql-to-file":
        source, target = sql, files
    else:
        print(f"Unknown MIGRATE_DIRECTION: {direction}")
        raise SystemExit(2)

    keys = source.list_keys()
    if not keys:
        print("No keys found in source store.")
        return
    copied = copy_store(source, target)
    print(f"Copied {copied} keys ({direction}).")


if __name__ == "__main__":
    main()
