# 스팟(Location) 문서 및 API 요청 스키마

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from onthespot.models.location_status import (
    CategoryClass,
    LocationStatus,
    classify_category,
    default_status,
)
from onthespot.schemas.base import StoreDocument


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Coordinate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Location(StoreDocument):
    """
    스팟. spots/{id} 에 저장.

    category_class 는 생성/카테고리 변경 시 한 번 결정되어 함께 저장된다.
    예전 문서처럼 값이 없으면 category 로부터 채운다.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    category: str
    category_class: Optional[CategoryClass] = None
    coordinate: Coordinate
    current_status: LocationStatus
    last_update: datetime = Field(default_factory=utc_now)
    created_by: Optional[str] = None

    @model_validator(mode="after")
    def _resolve_category_class(self) -> "Location":
        if self.category_class is None:
            self.category_class = classify_category(self.category)
        return self

    @classmethod
    def new(
        cls,
        name: str,
        category: str,
        latitude: float,
        longitude: float,
        status: Optional[LocationStatus] = None,
    ) -> "Location":
        """새 스팟. 상태를 생략하면 카테고리 축의 기본 상태."""
        category_class = classify_category(category)
        return cls(
            name=name,
            category=category,
            category_class=category_class,
            coordinate=Coordinate(latitude=latitude, longitude=longitude),
            current_status=status or default_status(category_class),
        )


class LocationCreate(BaseModel):
    """스팟 추가 요청. current_status 를 생략하면 카테고리 축의 기본값."""

    name: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=50)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    current_status: Optional[LocationStatus] = None


class StatusUpdateBody(BaseModel):
    status: LocationStatus


class LocationEditBody(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)


class LocationResponse(BaseModel):
    """스팟 응답. 상태의 표시 정보(title/icon/color)를 같이 내려준다."""

    id: str
    name: str
    category: str
    category_class: CategoryClass
    lat: float
    lng: float
    current_status: LocationStatus
    status_title: str
    status_icon: str
    status_color: str
    last_update: datetime
    created_by: Optional[str] = None
    distance_m: Optional[float] = None

    @classmethod
    def from_location(cls, location: Location, distance_m: Optional[float] = None) -> "LocationResponse":
        status = location.current_status
        return cls(
            id=location.id,
            name=location.name,
            category=location.category,
            category_class=location.category_class,
            lat=location.coordinate.latitude,
            lng=location.coordinate.longitude,
            current_status=status,
            status_title=status.title,
            status_icon=status.icon_name,
            status_color=status.color,
            last_update=location.last_update,
            created_by=location.created_by,
            distance_m=distance_m,
        )
