import logging

from sqlalchemy import create_engine

from safereturn import config

log = logging.getLogger(__name__)

connection_url = config.get_settings().DATABASE_URL

# Normalize bare postgres:// URLs (Heroku/Render style) for SQLAlchemy
if connection_url.startswith("postgres://"):
    connection_url = connection_url.replace("postgres://", "postgresql://", 1)

if connection_url.startswith("sqlite"):
    # Request handlers and scheduler jobs share the engine across threads
    engine = create_engine(connection_url, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        connection_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=3,
        max_overflow=7,
        pool_recycle=300,
        echo=False
    )

log.info(f"[Database] Engine created for {engine.url.render_as_string(hide_password=True)}")
