from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from cropscan.models.base import Base


class Severity(str, PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class CropStatus(str, PyEnum):
    HEALTHY = "HEALTHY"
    DISEASED = "DISEASED"
    AT_RISK = "AT_RISK"
    UNKNOWN = "UNKNOWN"


class Diagnostic(Base):
    """Outcome of one image analysis; created once, never updated."""

    __tablename__ = "diagnostics"
    __table_args__ = (
        Index("idx_diagnostics_farm_created", "farm_id", "created_at"),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 100",
            name="ck_diagnostics_confidence_range",
        ),
    )

    id = Column(Integer, primary_key=True)
    farm_id = Column(
        Integer, ForeignKey("farms.id", ondelete="CASCADE"), nullable=False
    )
    image_url = Column(String, nullable=False)
    disease = Column(String, nullable=False)
    confidence = Column(Integer, nullable=False, default=0)
    severity = Column(Enum(Severity, name="severity"), nullable=False)
    status = Column(Enum(CropStatus, name="crop_status"), nullable=False)
    crop = Column(String, nullable=False, default="")
    treatment = Column(Text, nullable=False, default="")
    prevention = Column(Text, nullable=False, default="")
    model_version = Column(String, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


__all__ = ["CropStatus", "Diagnostic", "Severity"]
