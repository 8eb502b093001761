import os
import sys

import psycopg2

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import DATABASE_URL

# Adds the lookup indexes to an existing PostgreSQL database created before
# they were declared on the models

if not DATABASE_URL.startswith("postgresql"):
    print(f"DATABASE_URL is not a PostgreSQL URL ({DATABASE_URL.split(':', 1)[0]}), nothing to do")
    sys.exit(1)

# libpq accepts the URL form, minus any SQLAlchemy driver suffix
conn = psycopg2.connect(DATABASE_URL.replace("postgresql+psycopg2://", "postgresql://", 1))

cur = conn.cursor()

index_commands = [
    "CREATE INDEX IF NOT EXISTS ix_presence_record_employee_id ON presence_record (employee_id);",
    "CREATE INDEX IF NOT EXISTS ix_presence_record_employee_id_timestamp ON presence_record (employee_id, timestamp);",
    "CREATE INDEX IF NOT EXISTS ix_time_log_employee_id ON time_log (employee_id);",
    "CREATE INDEX IF NOT EXISTS ix_time_log_employee_id_timestamp ON time_log (employee_id, timestamp);",
    "CREATE INDEX IF NOT EXISTS ix_time_log_branch_id ON time_log (branch_id);",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_geofence_source_scope ON geofence (source, scope_key);",
]

for cmd in index_commands:
    print(f"Executing: {cmd}")
    cur.execute(cmd)

conn.commit()

cur.close()
conn.close()
