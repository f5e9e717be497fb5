from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine,async_sessionmaker,AsyncSession
from sqlalchemy.pool import NullPool
from storefront.config.settings import config_settings
from storefront.db.utils import _normalize_db_url, is_sqlite

DATABASE_URL=_normalize_db_url(config_settings.DATABASE_URL)

if is_sqlite(DATABASE_URL):
    async_engine=create_async_engine(DATABASE_URL,echo=config_settings.DB_ECHO,poolclass=NullPool)

    # sqlite: take the write lock at BEGIN so concurrent checkouts queue up instead of both reading the same stock
    @event.listens_for(async_engine.sync_engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _sqlite_on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
else:
    async_engine=create_async_engine(DATABASE_URL,echo=config_settings.DB_ECHO,pool_pre_ping=True)

async_session=async_sessionmaker(bind=async_engine,class_=AsyncSession,expire_on_commit=False)
