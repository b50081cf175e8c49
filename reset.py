#!/usr/bin/env python3
from pathlib import Path
import sys
import subprocess

from scoresquare import config

root = Path(__file__).resolve().parent
db = Path(config.DATABASE)
if not db.is_absolute():
    db = root / db
for suffix in ("", "-wal", "-shm"):
    side = db.with_name(db.name + suffix)
    if side.exists():
        side.unlink()
subprocess.run([sys.executable, str(root / "db_setup.py"), str(db)], check=True)
