"""Engine, session factory and declarative base."""
from collections.abc import Generator

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///:memory:")


class DatabaseSettings(BaseSettings):
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "dealroom"
    db_host: str = "db"
    db_port: int = 5432
    db_pool_size: int = 5
    db_echo: bool = False
    database_url: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            "postgresql+psycopg2://"
            f"{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )


def build_engine(url: str, *, echo: bool = False, pool_size: int = 5) -> Engine:
    """SQLite (tests, local runs) shares connections across threadpool workers;
    an in-memory SQLite database must stay on a single connection."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in _IN_MEMORY_SQLITE:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True, pool_size=pool_size)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


db_settings = DatabaseSettings()
DATABASE_URL = db_settings.resolved_database_url

engine = build_engine(DATABASE_URL, echo=db_settings.db_echo, pool_size=db_settings.db_pool_size)
SessionLocal = build_session_factory(engine)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_connection(bind: Engine | None = None) -> bool:
    with (bind or engine).connect() as connection:
        connection.execute(text("SELECT 1"))
    return True
