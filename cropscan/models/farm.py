from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Float, Index, Integer, String, Text

from cropscan.models.base import Base


class Farm(Base):
    __tablename__ = "farms"
    __table_args__ = (Index("idx_farms_user", "user_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False)
    name = Column(String, nullable=False)
    location = Column(String, nullable=False)
    size_hectares = Column(Float, nullable=False)
    soil_type = Column(String)
    water_source = Column(String)
    description = Column(Text)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


__all__ = ["Farm"]
