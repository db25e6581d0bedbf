from typing import Optional

from pydantic import BaseModel, Field


class FloorCreate(BaseModel):
    name: str
    level: int = 1
    normalSpots: int = Field(ge=0)
    disabilitySpots: int = Field(default=0, ge=0)


class FloorUpdate(BaseModel):
    name: Optional[str] = None
    level: Optional[int] = None
    normalSpots: Optional[int] = Field(default=None, ge=0)
    disabilitySpots: Optional[int] = Field(default=None, ge=0)
    isActive: Optional[bool] = None

    def to_changes(self) -> dict:
        return {
            "name": self.name,
            "level": self.level,
            "normal_spots": self.normalSpots,
            "disability_spots": self.disabilitySpots,
            "is_active": self.isActive,
        }


class FloorOut(BaseModel):
    id: str
    name: str
    level: int
    normalSpots: int
    disabilitySpots: int
    availableNormalSpots: int
    availableDisabilitySpots: int
    isActive: bool
