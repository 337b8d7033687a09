# backend/tripstream/services/google_maps_service.py

import requests
from typing import Dict, Any, List, Optional

from tripstream.core.config_loader import settings
from tripstream.core.errors import ServiceNotConfigured
from tripstream.core.logger import logger


PLACES_URL = "https://places.googleapis.com/v1"

# Places API (New) returns price levels as enum strings
PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

# Type filter passed by the model -> Places includedType
INCLUDED_TYPES = {
    "hotel": "lodging",
    "restaurant": "restaurant",
    "attraction": "tourist_attraction",
    "cafe": "cafe",
    "bar": "bar",
}

SEARCH_FIELDS = (
    "places.id,"
    "places.displayName,"
    "places.formattedAddress,"
    "places.rating,"
    "places.userRatingCount,"
    "places.location,"
    "places.priceLevel,"
    "places.types,"
    "places.photos,"
    "places.googleMapsUri,"
    "places.regularOpeningHours"
)


class GoogleMapsService:
    def __init__(self, api_key: Optional[str] = None, timeout: float = 15):
        self.key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout

    def _headers(self, field_mask: str) -> Dict[str, str]:
        if not self.key:
            raise ServiceNotConfigured("Google Places", "GOOGLE_MAPS_API_KEY")
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.key,
            "X-Goog-FieldMask": field_mask,
        }

    # -------------------------------------------------------
    # GOOGLE PLACES TEXT SEARCH
    # -------------------------------------------------------
    def search_places(
        self,
        query: str,
        location: str,
        place_type: Optional[str] = None,
        min_rating: Optional[float] = None,
        price_levels: Optional[List[int]] = None,
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """
        Search places using Places API Text Search (New).

        Args:
            query: What to look for (e.g., "ramen")
            location: City or area, appended to the text query
            place_type: hotel | restaurant | attraction | cafe | bar | all
            min_rating: Drop results rated below this
            price_levels: Keep only these price levels (1-4)
            limit: Maximum number of results (API max is 20 per page)

        Returns:
            Normalized place dicts (see ``normalize_place``)
        """
        payload: Dict[str, Any] = {
            "textQuery": f"{query} in {location}" if location.lower() not in query.lower() else query,
            "pageSize": min(limit, 20),
            "languageCode": "en",
        }
        if place_type in INCLUDED_TYPES:
            payload["includedType"] = INCLUDED_TYPES[place_type]
        if min_rating:
            payload["minRating"] = min_rating

        logger.debug(f"Searching places with query: {payload['textQuery']}, type: {place_type}")
        resp = requests.post(
            f"{PLACES_URL}/places:searchText",
            json=payload,
            headers=self._headers(SEARCH_FIELDS),
            timeout=self.timeout,
        )
        resp.raise_for_status()

        places = [self.normalize_place(p) for p in resp.json().get("places", [])]
        if price_levels:
            places = [p for p in places if p.get("price_level") in price_levels]

        logger.info(f"Found {len(places)} places for query: {query} ({location})")
        return places

    # -------------------------------------------------------
    # PLACE DETAILS
    # -------------------------------------------------------
    def get_place_details(self, place_id: str) -> Dict[str, Any]:
        field_mask = SEARCH_FIELDS.replace("places.", "") + ",websiteUri,nationalPhoneNumber"
        resp = requests.get(
            f"{PLACES_URL}/places/{place_id}",
            headers=self._headers(field_mask),
            params={"languageCode": "en"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return self.normalize_place(resp.json())

    # -------------------------------------------------------
    # NORMALIZATION
    # -------------------------------------------------------
    @staticmethod
    def normalize_place(raw: Dict[str, Any]) -> Dict[str, Any]:
        location = raw.get("location") or {}
        hours = (raw.get("regularOpeningHours") or {}).get("weekdayDescriptions") or []
        photos = [
            f"{PLACES_URL}/{photo['name']}/media?maxWidthPx=800"
            for photo in (raw.get("photos") or [])[:5]
            if photo.get("name")
        ]

        return {
            "place_id": raw.get("id"),
            "name": (raw.get("displayName") or {}).get("text", ""),
            "address": raw.get("formattedAddress"),
            "coordinates": {
                "lat": location.get("latitude"),
                "lng": location.get("longitude"),
            } if location else None,
            "rating": raw.get("rating"),
            "review_count": raw.get("userRatingCount"),
            "price_level": PRICE_LEVELS.get(raw.get("priceLevel")),
            "types": raw.get("types", []),
            "photos": photos,
            "opening_hours": "; ".join(hours) if hours else None,
            "url": raw.get("googleMapsUri"),
            "website": raw.get("websiteUri"),
            "phone": raw.get("nationalPhoneNumber"),
        }
