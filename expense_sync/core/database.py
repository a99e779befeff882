from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from expense_sync.core.config import settings

# -----------------------------------------------------
# Database Engine + Session
# -----------------------------------------------------

DATABASE_URL = settings.DATABASE_URL

# SQLite connections are shared between the request thread and eager tasks
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=settings.SQL_ECHO,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# -----------------------------------------------------
# Base Model
# -----------------------------------------------------
class Base(DeclarativeBase):
    pass
