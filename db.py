from pathlib import Path
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

ROOT_DIR = Path(__file__).resolve().parent

def resolve_db_path(root_dir: Path) -> Path:
    db_path = Path(os.getenv("APP_DB_PATH") or "data/assets.db").expanduser()
    if not db_path.is_absolute():
        db_path = (root_dir / db_path).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path

def resolve_database_url() -> str:
    url = os.getenv("APP_DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{resolve_db_path(ROOT_DIR).as_posix()}"

DATABASE_URL = resolve_database_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# concurrent writers wait on the sqlite lock instead of failing straight away
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 15} if IS_SQLITE else {},
    echo=os.getenv("APP_SQL_ECHO") == "1",
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

class Base(DeclarativeBase):
    pass
