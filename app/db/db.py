from sqlmodel import Session, SQLModel, create_engine

from app.utils.settings import DATABASE_URL

# SQLite needs this for sessions handed to background tasks
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)


def create_db_and_tables():
    # import models so their tables are registered on the metadata
    from app.models import item, match, notification, user  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
