from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from cropscan import db as db_module
from cropscan.dependencies import rate_limit
from cropscan.errors import ErrorResponse
from cropscan.models import Farm, as_utc
from cropscan.services.farms import create_farm, list_farms

router = APIRouter()


class FarmIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=2)
    location: str = Field(min_length=3)
    size_hectares: float = Field(gt=0, alias="sizeHectares")
    soil_type: str | None = Field(None, alias="soilType")
    water_source: str | None = Field(None, alias="waterSource")
    description: str | None = None


class FarmOut(FarmIn):
    id: int
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, farm: Farm) -> "FarmOut":
        return cls(
            id=farm.id,
            name=farm.name,
            location=farm.location,
            size_hectares=farm.size_hectares,
            soil_type=farm.soil_type,
            water_source=farm.water_source,
            description=farm.description,
            created_at=as_utc(farm.created_at),
        )


@router.get(
    "/farms",
    response_model=List[FarmOut],
    responses={401: {"model": ErrorResponse}},
)
async def get_farms(user_id: int = Depends(rate_limit)):
    farms = await db_module.run_in_session(list_farms, user_id=user_id)
    return [FarmOut.from_record(f) for f in farms]


@router.post(
    "/farms",
    status_code=201,
    response_model=FarmOut,
    responses={401: {"model": ErrorResponse}},
)
async def add_farm(body: FarmIn, user_id: int = Depends(rate_limit)):
    farm = await db_module.run_in_session(create_farm, user_id=user_id, **body.model_dump())
    return FarmOut.from_record(farm)
