"""Initialize SQLite database for local development."""

from sqlalchemy import create_engine
from crete.models.base import Base
from crete.models.analysis import TrickAnalysis
from crete.models.feedback import CoachFeedback
from crete.config import get_settings

settings = get_settings()

def init_db():
    """Create all tables in the database."""
    # Use sync engine for table creation
    engine = create_engine(settings.database_url_sync, echo=True)
    Base.metadata.create_all(bind=engine)
    print("Database tables created successfully!")

if __name__ == "__main__":
    init_db()
