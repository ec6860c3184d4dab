from sqlalchemy import Column, Integer, String, Text, Date, DateTime, JSON, ForeignKey
from .database import Base

class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    company = Column(String, index=True)
    position = Column(String, index=True)
    status = Column(String, default="Applied")
    job_type = Column(String, default="Onsite")
    location = Column(String, nullable=True)
    date_applied = Column(Date, index=True)
    # Time of submission, when known; drives the time-of-day achievements
    submitted_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    attachments = Column(JSON, default=list)

    user_id = Column(Integer, ForeignKey("users.id"), index=True)
