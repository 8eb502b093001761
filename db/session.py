from sqlmodel import create_engine

from core.config import DATABASE_URL, DB_ECHO

# Connects app to the database (SQLite by default, PostgreSQL via psycopg2 in production)

# SQLite connections are per-thread by default; persistence work runs in
# worker threads via asyncio.to_thread, so allow cross-thread use
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# The Wire / Link That Lets Us Pass Data from App -> db
# Note: echo=True will log all SQL statements, keep it off in production
engine = create_engine(DATABASE_URL, echo=DB_ECHO, connect_args=connect_args)
