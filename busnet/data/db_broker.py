from busnet.config.config_main import db_config

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager

# Base class for SQLAlchemy models
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class ConnectionBroker:

    _engine = None
    _SessionLocal = None

    @staticmethod
    def get_engine():
        """Get or create SQLAlchemy engine."""
        if ConnectionBroker._engine is None:
            connection_string = db_config.connection_string()
            if connection_string.startswith("sqlite"):
                # One shared connection so in-memory databases survive across sessions
                engine = create_engine(
                    connection_string,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=db_config.echo
                )
                event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            else:
                engine = create_engine(
                    connection_string,
                    pool_pre_ping=True,  # Verify connections before using
                    pool_size=db_config.pool_size,
                    pool_timeout=db_config.pool_timeout,
                    echo=db_config.echo
                )
            ConnectionBroker._engine = engine
        return ConnectionBroker._engine

    @staticmethod
    def get_session_factory():
        """Get or create SQLAlchemy session factory."""
        if ConnectionBroker._SessionLocal is None:
            engine = ConnectionBroker.get_engine()
            ConnectionBroker._SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=engine
            )
        return ConnectionBroker._SessionLocal

    @staticmethod
    @contextmanager
    def get_session():
        """
        Get a SQLAlchemy session with automatic cleanup.

        Commits when the block exits normally, rolls back on any exception.

        Usage:
            with ConnectionBroker.get_session() as session:
                session.query(Model).all()
        """
        SessionLocal = ConnectionBroker.get_session_factory()
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def create_tables():
        """Create all tables defined in models."""
        # Registers the mapped classes on Base.metadata
        from busnet.data import models  # noqa: F401
        engine = ConnectionBroker.get_engine()
        Base.metadata.create_all(bind=engine)

    @staticmethod
    def reset():
        """Dispose the cached engine and session factory."""
        if ConnectionBroker._engine is not None:
            ConnectionBroker._engine.dispose()
        ConnectionBroker._engine = None
        ConnectionBroker._SessionLocal = None
