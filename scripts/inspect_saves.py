"""Print the most recently updated saves in the server database."""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from db import connect_db  # noqa: E402
from db_migrations import apply_migrations  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--limit", type=int, default=5)
    parser.add_argument("--username", default=None)
    args = parser.parse_args()

    conn = connect_db()
    try:
        apply_migrations(conn)
        if args.username:
            rows = conn.execute(
                "SELECT username,data_json,updated_at FROM saves WHERE username=?",
                (args.username.strip().lower(),),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT username,data_json,updated_at FROM saves ORDER BY updated_at DESC LIMIT ?",
                (args.limit,),
            ).fetchall()
    finally:
        conn.close()

    if not rows:
        print("No saves found.")
        return 0

    for row in rows:
        data = json.loads(row["data_json"])
        realm = data.get("realm") or {}
        updated = datetime.fromtimestamp(float(row["updated_at"]), tz=timezone.utc).isoformat()
        print(f"\nUser: {row['username']}")
        print(f"Updated: {updated}  lastSaveTime={data.get('lastSaveTime')}")
        print(f"Faction: {data.get('faction')}")
        print(f"Realm: {realm.get('name')} (id {realm.get('id')}, stage {realm.get('stage')})")
        print(f"Qi: {data.get('resources', {}).get('qi')}  lifetime: {data.get('resources', {}).get('totalQi')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
