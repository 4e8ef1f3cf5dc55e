import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careerpath.core.database import Base, JSONType


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    data: Mapped[dict] = mapped_column(JSONType)
    grade: Mapped[str] = mapped_column(String(20))
    board: Mapped[str] = mapped_column(String(50))
    language_preference: Mapped[str] = mapped_column(String(20))
    rural_urban: Mapped[str] = mapped_column(String(20))
    family_income: Mapped[str] = mapped_column(String(50))
    completeness: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    owner = relationship("User", back_populates="profiles")
    recommendations = relationship(
        "Recommendation",
        back_populates="profile",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
