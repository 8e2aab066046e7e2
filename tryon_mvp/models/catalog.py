"""Catalog, history and user models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# Category vocabulary offered by the admin screen
CATEGORIES = ["T-Shirts", "Hoodies", "Jackets", "Shirts", "Dresses", "Pants"]

ALL_CATEGORIES = "All"


class ClothingItem(BaseModel):
    """A catalog entry the user can try on."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    name: str
    category: str
    image_url: str = Field(description="Public URL (or local path) of the clothing image")
    storage_key: str | None = Field(default=None, description="Blob key, used to delete the image")
    created_at: datetime | None = None


class HistoryRecord(BaseModel):
    """A saved try-on look."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    user_id: str
    clothing_id: str
    clothing_name: str
    image_url: str
    created_at: datetime


class UserProfile(BaseModel):
    """The signed-in user as reported by the auth provider."""

    id: str
    email: str | None = None
    display_name: str | None = None


class AuthSession(BaseModel):
    """Tokens issued on login/signup."""

    user: UserProfile
    access_token: str | None = None  # None until the provider confirms the account
    refresh_token: str | None = None


def categories(items: list[ClothingItem]) -> list[str]:
    """Category tabs for a list of items, "All" first, in first-seen order."""
    seen: list[str] = []
    for item in items:
        if item.category not in seen:
            seen.append(item.category)
    return [ALL_CATEGORIES, *seen]


def filter_by_category(items: list[ClothingItem], category: str | None) -> list[ClothingItem]:
    """Items of one category; "All" (or None) returns every item."""
    if not category or category == ALL_CATEGORIES:
        return list(items)
    return [item for item in items if item.category == category]
