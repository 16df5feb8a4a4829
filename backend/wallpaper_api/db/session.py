from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wallpaper_api.core.config import settings

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
