from medtrack.db.session import engine
from medtrack.db.base import Base

# IMPORTANT: import models so they register with Base.metadata
from medtrack.db.models.session_entry import SessionEntry  # noqa: F401

def init_db() -> None:
    Base.metadata.create_all(bind=engine)
