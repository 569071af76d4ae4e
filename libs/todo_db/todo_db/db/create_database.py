import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from psycopg2.extensions import connection as PGConnection
from sqlalchemy.engine import make_url

from common.core.app_error import Errors
from common.core.config_service import PostgresConfig
from common.utils.utils import get_logger

logger = get_logger()


def create_database(postgres: PostgresConfig) -> bool:
    """Create the target database if it doesn't exist.

    Connects to the server's ``postgres`` maintenance database with the
    credentials of ``POSTGRES_URL``.

    Returns:
        True when the database was created, False when it already existed.
    """
    url = make_url(postgres.sync_url)
    db_name = url.database
    if not db_name:
        raise Errors.Config.INVALID.create(message="POSTGRES_URL does not name a database")

    logger.info("Database creation parameters", database_name=db_name, host=url.host, port=url.port or 5432)

    try:
        conn: PGConnection = psycopg2.connect(
            host=url.host,
            port=url.port or 5432,
            user=url.username,
            password=url.password,
            dbname="postgres",
        )
    except psycopg2.Error as e:
        raise Errors.Migration.FAILED.create(
            message="Cannot connect to the PostgreSQL server", details={"pgcode": e.pgcode}, cause=e
        ) from e

    try:
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        with conn.cursor() as cursor:
            cursor.execute("SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s", (db_name,))
            if cursor.fetchone():
                logger.info("Database already exists", database_name=db_name, status="exists")
                return False

            logger.info("Creating database", database_name=db_name)
            cursor.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))
            logger.info("Database created successfully", database_name=db_name, status="created")
            return True
    except psycopg2.Error as e:
        raise Errors.Migration.FAILED.create(
            message=f"Cannot create database {db_name}", details={"pgcode": e.pgcode}, cause=e
        ) from e
    finally:
        conn.close()
