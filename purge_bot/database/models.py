from sqlalchemy import Column, Integer, String, Boolean

from purge_bot.database.db import Base


class Profile(Base):
    """Gmail account and the GoLogin profile that holds its session."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    profile_id = Column(String(255), nullable=True)
    activate = Column(Boolean, nullable=True, default=True)


def find_profile(session, email: str):
    """Active profile registered for an account, or None."""
    return (
        session.query(Profile)
        .filter(Profile.email == email)
        .filter(Profile.activate.isnot(False))
        .first()
    )
