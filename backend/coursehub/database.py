# coursehub/database.py
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from . import config
from .models import Base


def make_engine(url):
    connect_args = {}
    if url.startswith("sqlite"):
        # SQLite connections are shared with FastAPI's threadpool
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Cascading deletes need this on every SQLite connection
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = make_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create missing tables. There is no migration tool."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


# --- One row per key ---

def find_unique(db, model, keys):
    return db.query(model).filter_by(**keys).first()


def upsert(db, model, keys, values):
    """Insert or update the single row of `model` matching `keys`, then commit.

    A concurrent request may insert the same keys between the lookup and the
    commit; the unique constraint rejects ours and the row is updated instead.
    Returns the row and its values from before the update (None when new).
    """
    for retry in (False, True):
        row = find_unique(db, model, keys)
        previous = None
        if row is None:
            row = model(**keys, **values)
            db.add(row)
        else:
            previous = {name: getattr(row, name) for name in values}
            for name, value in values.items():
                setattr(row, name, value)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if retry or previous is not None:
                raise
            continue
        return row, previous
