"""Profile fields consumed by compatibility scoring."""

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ProfilePrompt(BaseModel):
    question: str
    answer: str


class Profile(BaseModel):
    """Dating profile as read from the profile store."""

    id: str = Field(min_length=1)
    age: int = Field(ge=0)
    age_range_min: int = Field(default=18, ge=0)
    age_range_max: int = Field(default=99, ge=0)
    interests: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)

    # Lifestyle (absent when not answered)
    smoking: str | None = None
    drinking: str | None = None
    exercise: str | None = None
    diet: str | None = None
    pets: str | None = None
    relationship_goal: str | None = None

    # Location
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    max_distance: int = Field(default=50, gt=0)  # km

    is_premium: bool = False
    is_verified: bool = False

    # Profile richness
    bio: str = ""
    photos: list[str] = Field(default_factory=list)
    prompts: list[ProfilePrompt] = Field(default_factory=list)
    education_level: str | None = None
    height: int | None = None  # cm

    @field_validator(
        "smoking", "drinking", "exercise", "diet", "pets", "relationship_goal", "education_level", mode="before"
    )
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_age_range(self) -> "Profile":
        if self.age_range_min > self.age_range_max:
            raise ValueError("age_range_min must not exceed age_range_max")
        return self

    @property
    def location(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)
