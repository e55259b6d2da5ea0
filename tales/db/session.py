from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from tales.db.models import Base


def normalize_database_url(database_url: str) -> str:
    # Use psycopg (v3) driver; URL may be postgresql:// from env
    if database_url.startswith("postgresql://") and "+" not in database_url.split("?")[0]:
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    # Supabase and most cloud Postgres require SSL
    if "postgresql" in database_url and "sslmode" not in database_url:
        database_url += "?sslmode=require" if "?" not in database_url else "&sslmode=require"
    return database_url


def make_session_factory(database_url: str) -> sessionmaker:
    database_url = normalize_database_url(database_url)
    connect_args = {} if "postgresql" in database_url else {"check_same_thread": False}
    engine = create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
    )
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(session_factory: sessionmaker):
    Base.metadata.create_all(bind=session_factory.kw["bind"])
