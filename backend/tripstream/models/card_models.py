# backend/tripstream/models/card_models.py

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models whose JSON keys are camelCase on the wire (``video_id`` -> ``videoId``)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------------------------------------
# PLACE CARDS
# ----------------------------------------------------------
class Coordinates(BaseModel):
    lat: float
    lng: float


CardType = Literal["location", "restaurant", "hotel", "activity"]


class PlaceCard(BaseModel):
    id: str
    type: CardType
    name: str
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    photos: List[str] = Field(default_factory=list)
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    price: Optional[float] = None
    opening_hours: Optional[str] = None
    url: Optional[str] = None
    place_id: Optional[str] = None
    cuisine_type: Optional[str] = None


# ----------------------------------------------------------
# VIDEOS
# ----------------------------------------------------------
class VideoResult(CamelModel):
    video_id: str
    title: str
    description: str = ""
    thumbnail_url: str = ""
    channel_title: str = ""
    published_at: Optional[str] = None


class VideoPlace(CamelModel):
    name: str
    type: Literal["restaurant", "attraction", "hotel", "landmark", "other"] = "other"
    note: str = ""


class VideoAnalysis(CamelModel):
    video_id: str
    summary: str
    highlights: List[str] = Field(default_factory=list)
    places: List[VideoPlace] = Field(default_factory=list)
    analyzed_at: Optional[str] = None


class SmartVideoResult(CamelModel):
    search_titles: List[str] = Field(default_factory=list)
    videos: List[VideoResult] = Field(default_factory=list)


# ----------------------------------------------------------
# ITINERARY (parsed from the model's JSON block)
# ----------------------------------------------------------
class ItineraryItem(CamelModel):
    type: Literal["activity", "restaurant", "hotel", "transport", "break"] = "activity"
    name: str
    time_slot: Literal["morning", "afternoon", "evening", "night"] = "morning"
    duration_minutes: int = 60
    why: List[str] = Field(default_factory=list)
    place_id: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class ItineraryDay(CamelModel):
    day: int
    date: Optional[str] = None
    theme: str = ""
    why_this_day_works: List[str] = Field(default_factory=list)
    items: List[ItineraryItem] = Field(default_factory=list)


class TripSummary(CamelModel):
    destination: str
    days: int
    traveler_type: Optional[str] = None
    pace: Optional[str] = None
    focus: List[str] = Field(default_factory=list)


class ItineraryResponse(CamelModel):
    trip_summary: TripSummary
    why_this_plan_works: List[str] = Field(default_factory=list)
    days: List[ItineraryDay] = Field(default_factory=list)
    general_tips: List[str] = Field(default_factory=list)
