from sqlalchemy import Column, Integer, String, DateTime, JSON
from app.database import Base


class SweepLock(Base):
    """Named lease serialising escalation sweeps across processes."""
    __tablename__ = "sweep_locks"

    name = Column(String, primary_key=True)
    holder = Column(String, nullable=True)  # None when released
    acquired_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)


class SweepRun(Base):
    __tablename__ = "sweep_runs"

    id = Column(Integer, primary_key=True, index=True)
    triggered_by = Column(String, nullable=False)  # "cron", "manual:<user_id>", "cli"
    status = Column(String, nullable=False, default="RUNNING")  # RUNNING, COMPLETED, FAILED
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    processed = Column(Integer, nullable=False, default=0)
    escalated = Column(Integer, nullable=False, default=0)
    redirected = Column(Integer, nullable=False, default=0)
    auto_approved = Column(Integer, nullable=False, default=0)
    held = Column(Integer, nullable=False, default=0)
    reminded = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=True)
