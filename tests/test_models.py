from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cropscan.models import Base, CropStatus, Diagnostic, Farm, Severity


def test_create_all_schema_keeps_confidence_range():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        farm = Farm(user_id=1, name="Shamba", location="Nakuru", size_hectares=1.0)
        session.add(farm)
        session.commit()
        session.add(
            Diagnostic(
                farm_id=farm.id,
                image_url="memory://x.jpg",
                disease="Leaf Rust",
                confidence=150,
                severity=Severity.LOW,
                status=CropStatus.DISEASED,
                model_version="seed-model",
                created_at=datetime.now(timezone.utc),
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
