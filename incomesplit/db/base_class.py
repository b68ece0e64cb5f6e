# incomesplit/db/base_class.py
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    # Временные метки вычисляются на стороне Python, чтобы не перечитывать их после flush
    return datetime.now(tz=timezone.utc)
