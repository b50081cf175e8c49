import sqlite3
import sys

from scoresquare import config
from scoresquare.leaderboard_cache import KV_SCHEMA_SQL

DB = sys.argv[1] if len(sys.argv) > 1 else config.DATABASE

conn = sqlite3.connect(DB, check_same_thread=False)
cur = conn.cursor()

# Pragmas to make SQLite friendlier for a web app
cur.execute("PRAGMA journal_mode=WAL;")
cur.execute("PRAGMA synchronous=NORMAL;")
cur.execute("PRAGMA busy_timeout=10000;")

# --- Tables ---

# Leaderboard snapshot: two rows, the serialized entries and the epoch-ms timestamp
cur.executescript(KV_SCHEMA_SQL)

conn.commit()
conn.close()

print(f"Database initialized: {DB}")
