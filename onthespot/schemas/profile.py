# 사용자 프로필 문서 및 API 스키마

from typing import List, Optional

from pydantic import BaseModel, Field

from onthespot.schemas.base import StoreDocument


class Profile(StoreDocument):
    """
    users/{uid} 의 프로필 부분. hiddenSpots / blockedUsers 는 ModerationLedger 소관이라 여기선 무시.

    contribution_points 는 저장 키 "points", home_location 은 "location".
    """

    user_id: Optional[str] = Field(default=None, exclude=True)
    name: str = "User"
    bio: str = ""
    home_location: str = Field(default="", alias="location")
    avatar: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    contribution_points: int = Field(default=0, alias="points")
    spots_added: int = 0


class ProfileUpdateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    bio: str = ""
    home_location: str = ""
    tags: List[str] = Field(default_factory=list)
    avatar: Optional[str] = None


class ProfileResponse(BaseModel):
    user_id: Optional[str] = None
    name: str
    bio: str
    home_location: str
    avatar: Optional[str] = None
    tags: List[str]
    contribution_points: int
    spots_added: int
    level: str
    progress_to_next_level: float
