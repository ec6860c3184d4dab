from sqlalchemy import Column, Integer, DateTime, ForeignKey, func
from .database import Base

class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True)
    total_goal = Column(Integer, default=100)
    weekly_goal = Column(Integer, default=5)
    monthly_goal = Column(Integer, default=20)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
