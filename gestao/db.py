from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# SQLite é usado pelas threads do FastAPI: desliga o check de thread única
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,              # True para ver as queries
    future=True,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _sqlite_fk(dbapi_conn, _record) -> None:
        # SQLite só aplica as FKs com o pragma ligado
        dbapi_conn.execute("PRAGMA foreign_keys=ON")


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base ORM de todos os modelos."""
    pass


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager da sessão:
    - commit se tudo ok
    - rollback em exceção
    - close sempre
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def banco_disponivel() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error("Banco indisponível: %s", e)
        return False


def verificar_conexao(retries: int = 10, espera_max: float = 10.0, sleep: Callable[[float], None] = time.sleep) -> bool:
    """
    Testa a conexão na subida da aplicação.
    Espera min(2s * tentativa, espera_max) entre uma tentativa e outra.
    """
    for tentativa in range(1, retries + 1):
        inicio = time.monotonic()
        if banco_disponivel():
            logger.info("Conexão com banco estabelecida em %.0fms (%s)", (time.monotonic() - inicio) * 1000, engine.url.render_as_string(hide_password=True))
            return True

        logger.warning("Tentativa %d/%d de conexão falhou", tentativa, retries)
        if tentativa < retries:
            sleep(min(2.0 * tentativa, espera_max))

    logger.error("Todas as tentativas de conexão falharam")
    return False
