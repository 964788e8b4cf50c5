from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from cropscan.errors import ErrorCode, ValidationError
from cropscan.models import Farm


def parse_farm_ref(value: Any) -> int | None:
    """Turn an optional form value into a farm id."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        farm_id = int(text)
    except ValueError as exc:
        raise ValidationError("Invalid farm reference", ErrorCode.INVALID_FARM) from exc
    if farm_id <= 0:
        raise ValidationError("Invalid farm reference", ErrorCode.INVALID_FARM)
    return farm_id


def resolve_farm_id(db: Session, *, user_id: int, farm_id: int | None = None) -> int:
    """Return the farm a new diagnostic belongs to.

    An explicit ``farm_id`` must be owned by ``user_id``. Without one the
    user's oldest farm is used.
    """
    if farm_id is not None:
        owned = db.execute(
            select(Farm.id).where(Farm.id == farm_id, Farm.user_id == user_id)
        ).scalar_one_or_none()
        if owned is None:
            raise ValidationError(
                "Farm not found for this user", ErrorCode.INVALID_FARM
            )
        return owned

    first = db.execute(
        select(Farm.id)
        .where(Farm.user_id == user_id)
        .order_by(Farm.created_at.asc(), Farm.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    if first is None:
        raise ValidationError(
            "No farm found. Create a farm profile first.", ErrorCode.NO_FARM
        )
    return first


def list_farm_ids(db: Session, *, user_id: int) -> list[int]:
    return list(
        db.execute(
            select(Farm.id).where(Farm.user_id == user_id).order_by(Farm.id)
        ).scalars()
    )


def list_farms(db: Session, *, user_id: int) -> list[Farm]:
    return list(
        db.execute(
            select(Farm)
            .where(Farm.user_id == user_id)
            .order_by(Farm.created_at.desc(), Farm.id.desc())
        ).scalars()
    )


def create_farm(db: Session, *, user_id: int, **fields: Any) -> Farm:
    farm = Farm(user_id=user_id, **fields)
    db.add(farm)
    db.commit()
    db.refresh(farm)
    return farm
