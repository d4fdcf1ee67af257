"""Job run tracking model for sync observability.

Persists each event sync execution so that /api/system/status can report
the last run across workers and restarts.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class JobRun(Base):
    """One execution of a scheduled or cron-triggered job.

    A row is created with status "running" when the job starts and is
    updated to "success" or "failed" when it ends. records_processed holds
    the number of upstream events seen by a sync run.
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_id: Mapped[str] = mapped_column(String(64), index=True)
    run_id: Mapped[str] = mapped_column(String(36))  # UUID for log correlation
    # "scheduler" or "cron"
    trigger: Mapped[str] = mapped_column(String(16), default="scheduler")

    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # "running", "success", "failed"
    status: Mapped[str] = mapped_column(String(16), default="running")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    records_processed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_job_runs_job_id_started_at", "job_id", "started_at"),
    )

    def mark_success(self, records_processed: Optional[int] = None) -> None:
        self.status = "success"
        self.completed_at = datetime.utcnow()
        if records_processed is not None:
            self.records_processed = records_processed

    def mark_failed(self, error_message: str) -> None:
        self.status = "failed"
        self.completed_at = datetime.utcnow()
        self.error_message = error_message[:500]

    @property
    def duration_seconds(self) -> Optional[float]:
        """Wall-clock duration, None while the run is still in progress."""
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None
