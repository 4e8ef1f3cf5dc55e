import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careerpath.core.database import Base, JSONType


class Recommendation(Base):
    __tablename__ = "recommendations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("student_profiles.id", ondelete="CASCADE"), index=True
    )
    recommendations: Mapped[list] = mapped_column(JSONType)
    context: Mapped[dict] = mapped_column(JSONType)
    ai_model: Mapped[str] = mapped_column(String(100))
    processing_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    confidence: Mapped[int] = mapped_column(Integer, default=0)
    avg_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    profile = relationship("StudentProfile", back_populates="recommendations")

    def result_data(self) -> dict:
        """Stored rows in the shape of RecommendationResult."""
        return {
            "recommendations": self.recommendations,
            "context": self.context,
            "metadata": {
                "generated_at": self.created_at,
                "profile_id": self.profile_id,
                "ai_model": self.ai_model,
                "processing_time_ms": self.processing_time_ms,
                "confidence": self.confidence,
            },
        }
