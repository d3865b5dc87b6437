from pathlib import Path

from sqlalchemy import Engine, event
from sqlmodel import Session, SQLModel, create_engine

from cursor_bot.core.config import settings


def create_db_engine(db_path: Path, echo: bool = False) -> Engine:
    """SQLite engine for the bot database file."""
    db_engine = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"check_same_thread": False},
    )

    # Handlers, the monitor and the API read the same file concurrently
    @event.listens_for(db_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return db_engine


engine = create_db_engine(settings.db_path, echo=settings.debug)


def init_db() -> None:
    import cursor_bot.models.conversation  # noqa: F401 - ensure models are registered
    import cursor_bot.models.task  # noqa: F401

    Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
