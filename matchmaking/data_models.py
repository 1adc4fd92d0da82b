from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


TagCategory = Literal["interest", "context", "intention"]

Proximity = Literal["local", "metro", "countrywide", "global"]

NO_GENDER_PREFERENCE = {"", "no preference", "any", "none"}


class User(BaseModel):
    """
    A user profile as read from the profile store. Read-only to the engine.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    nickname: Optional[str] = None
    dob: date
    gender: Optional[str] = None
    gender_preference: Optional[str] = Field(default=None, alias="genderPreference")
    preferred_age_min: Optional[int] = Field(default=None, alias="preferredAgeMin")
    preferred_age_max: Optional[int] = Field(default=None, alias="preferredAgeMax")
    proximity: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    metro_area: Optional[str] = Field(default=None, alias="metroArea")

    @property
    def display_name(self) -> str:
        return self.nickname or self.username

    @property
    def has_coordinates(self) -> bool:
        # (0, 0) is how the profile form stores "not shared"
        if self.latitude is None or self.longitude is None:
            return False
        return not (self.latitude == 0 and self.longitude == 0)

    @property
    def has_gender_preference(self) -> bool:
        pref = (self.gender_preference or "").strip().lower()
        return pref not in NO_GENDER_PREFERENCE


class Tag(BaseModel):
    """
    One entry of the shared tag vocabulary.
    """

    id: int
    name: str
    category: TagCategory


class Thought(BaseModel):
    """
    A journal entry. `embedding` is the serialized vector exactly as stored.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    user_id: str = Field(alias="userId")
    content: str = ""
    embedding: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")
