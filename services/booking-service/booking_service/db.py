from sqlalchemy.orm import declarative_base

from shared.database import get_engine, get_session
from .config import BOOKING_DB

engine = get_engine(BOOKING_DB)
SessionLocal = get_session(engine)

Base = declarative_base()


async def get_db():
    async with SessionLocal() as session:
        yield session
