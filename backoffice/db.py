from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from backoffice.settings import settings


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    # check_same_thread 는 SQLite 전용
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def session_factory() -> Session:
    return SessionLocal()


def dialect_insert(session: Session, model):
    """
    세션 바인드의 방언에 맞는 INSERT 구문 (on_conflict_do_update 지원).
    운영은 PostgreSQL, 테스트는 SQLite.
    """
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)
