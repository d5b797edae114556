from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from purge_bot.database.config import get_database_url

DATABASE_URL = get_database_url()

engine = create_engine(DATABASE_URL, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
