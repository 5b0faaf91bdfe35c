# marketplace/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import event

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()


def configure_sqlite_locking(engine):
    """
    SQLite has no row-level conditional writes across connections. Write paths
    open their transaction with ``begin_write`` (BEGIN IMMEDIATE) so concurrent
    order creations queue on the writer lock for up to the busy timeout instead
    of failing mid-transaction. Every other transaction is a plain deferred
    BEGIN, and WAL journaling lets those readers stay open while a writer
    commits.

    A write path whose session already holds a deferred transaction keeps it;
    such callers should commit or roll back before writing.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin")
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


def begin_write(session):
    """Open the session's transaction for writing, unless one is already open."""
    if not session().in_transaction():
        session.connection(execution_options={"sqlite_begin": "IMMEDIATE"})
