from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings_instance = get_settings()
db_url = settings_instance.DATABASE_URL
is_sqlite = db_url.startswith("sqlite")

# Ocultar credenciales en el log
display_url = db_url
if '@' in display_url:
    scheme, rest = display_url.split('://', 1)
    display_url = f"{scheme}://***@{rest.split('@', 1)[1]}"

if is_sqlite:
    engine = create_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        db_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=180,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
        execution_options={
            "isolation_level": "READ COMMITTED",
        }
    )


def configure_sqlite_engine(sqlite_engine) -> None:
    """
    Activa claves foráneas y deja que SQLAlchemy controle el BEGIN, de modo
    que SAVEPOINT y SELECT ... FOR UPDATE se comporten como en PostgreSQL.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


if is_sqlite:
    configure_sqlite_engine(engine)

logger.info(f"Engine de base de datos creado: {display_url}")

# Crear clase de sesión
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependencia para obtener la sesión de DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Error de SQLAlchemy en la sesión: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
