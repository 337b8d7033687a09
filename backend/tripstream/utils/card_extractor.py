# backend/tripstream/utils/card_extractor.py

import uuid
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from tripstream.core.logger import get_logger
from tripstream.models.card_models import (
    PlaceCard,
    SmartVideoResult,
    VideoAnalysis,
    VideoResult,
)
from tripstream.models.tool_models import ToolInvocation


log = get_logger("cards")

MAX_CARDS_PER_SEARCH = 6

# Tools whose data is a list of place-like dicts
PLACE_LIST_TOOLS = {"search_places", "search_hotels"}

GENERIC_TYPES = {"restaurant", "food", "point_of_interest", "establishment"}


# ----------------------------------------------------------
# CARD TYPE
# ----------------------------------------------------------
def card_type_for(types: List[str], query_type: Optional[str] = None) -> str:
    if query_type == "hotel" or "lodging" in types or "hotel" in types:
        return "hotel"
    if query_type in ("restaurant", "cafe") or {"restaurant", "cafe", "food"} & set(types):
        return "restaurant"
    if {"tourist_attraction", "museum", "park"} & set(types):
        return "location"
    if {"amusement_park", "aquarium", "zoo"} & set(types):
        return "activity"
    return "location"


def cuisine_type_for(types: List[str]) -> Optional[str]:
    specific = [t for t in types if t not in GENERIC_TYPES]
    if not specific:
        return None
    return specific[0].replace("_", " ").title()


# ----------------------------------------------------------
# PLACE CARDS
# ----------------------------------------------------------
def build_place_card(place: Dict[str, Any], query_type: Optional[str] = None) -> Optional[PlaceCard]:
    types = place.get("types") or []
    kind = card_type_for(types, query_type)

    coords = place.get("coordinates") or {}
    has_coords = coords.get("lat") is not None and coords.get("lng") is not None

    try:
        return PlaceCard(
            id=place.get("place_id") or str(uuid.uuid4()),
            type=kind,
            name=place.get("name") or "Unnamed place",
            address=place.get("address"),
            coordinates=coords if has_coords else None,
            photos=place.get("photos") or [],
            rating=place.get("rating"),
            review_count=place.get("review_count"),
            price_level=place.get("price_level"),
            price=place.get("price"),
            opening_hours=place.get("opening_hours"),
            url=place.get("url"),
            place_id=place.get("place_id"),
            cuisine_type=cuisine_type_for(types) if kind == "restaurant" else None,
        )
    except ValidationError as e:
        log.warning(f"Skipping malformed place {place.get('name')!r}: {e.error_count()} errors")
        return None


def extract_cards(invocations: Iterable[ToolInvocation]) -> List[PlaceCard]:
    """Place/hotel cards from the successful invocations of one round, in request order."""
    cards: List[PlaceCard] = []

    for inv in invocations:
        if not inv.succeeded or inv.result.data is None:
            continue
        data = inv.result.data

        if inv.tool_name in PLACE_LIST_TOOLS and isinstance(data, list):
            query_type = "hotel" if inv.tool_name == "search_hotels" else inv.arguments.get("type")
            built = (build_place_card(p, query_type) for p in data[:MAX_CARDS_PER_SEARCH])
            cards.extend(c for c in built if c is not None)
        elif inv.tool_name == "get_place_details" and isinstance(data, dict):
            card = build_place_card(data, "location")
            if card is not None:
                cards.append(card)

    return cards


# ----------------------------------------------------------
# VIDEOS
# ----------------------------------------------------------
def extract_videos(invocations: Iterable[ToolInvocation]) -> List[VideoResult]:
    videos: List[VideoResult] = []
    for inv in invocations:
        if inv.tool_name == "search_videos" and inv.succeeded and isinstance(inv.result.data, list):
            videos.extend(VideoResult.model_validate(v) for v in inv.result.data)
    return videos


def extract_video_analyses(invocations: Iterable[ToolInvocation]) -> List[VideoAnalysis]:
    return [
        VideoAnalysis.model_validate(inv.result.data)
        for inv in invocations
        if inv.tool_name == "analyze_video" and inv.succeeded and inv.result.data
    ]


def extract_smart_video_results(invocations: Iterable[ToolInvocation]) -> List[SmartVideoResult]:
    return [
        SmartVideoResult.model_validate(inv.result.data)
        for inv in invocations
        if inv.tool_name == "find_video_guides" and inv.succeeded and inv.result.data
    ]
