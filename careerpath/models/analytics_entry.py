import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from careerpath.core.database import Base, JSONType


class AnalyticsEntry(Base):
    """Anonymized record of one recommendation run. Holds no direct identifiers."""

    __tablename__ = "analytics_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_hash: Mapped[str] = mapped_column(String(16), index=True)
    grade: Mapped[str] = mapped_column(String(20))
    board: Mapped[str] = mapped_column(String(50))
    region: Mapped[str] = mapped_column(String(100))
    rural_urban: Mapped[str] = mapped_column(String(20))
    language: Mapped[str] = mapped_column(String(20))
    income_range: Mapped[str] = mapped_column(String(50))
    gender: Mapped[str | None] = mapped_column(String(30), nullable=True)
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    family_background: Mapped[str] = mapped_column(String(30))
    performance: Mapped[str] = mapped_column(String(30))
    interests: Mapped[list] = mapped_column(JSONType, default=list)
    subjects: Mapped[list] = mapped_column(JSONType, default=list)
    career_ids: Mapped[list] = mapped_column(JSONType, default=list)
    career_titles: Mapped[list] = mapped_column(JSONType, default=list)
    avg_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_model: Mapped[str] = mapped_column(String(100))
    processing_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
