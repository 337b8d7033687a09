# backend/tripstream/services/hotel_service.py

import re
from datetime import date, datetime, timedelta
from typing import Dict, Any, List, Optional

from tripstream.services.serpapi_service import SerpAPIService


class HotelService:
    def __init__(self, serpapi: Optional[SerpAPIService] = None):
        self.serpapi = serpapi or SerpAPIService()

    def search_hotels(
        self,
        location: str,
        check_in_date: Optional[str] = None,
        check_out_date: Optional[str] = None,
        max_price: Optional[float] = None,
        adults: int = 2,
        currency: str = "USD",
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """
        Search hotels using SerpAPI Google Hotels.

        Args:
            location: City or neighborhood (e.g., "Shinjuku, Tokyo")
            check_in_date: YYYY-MM-DD; defaults to one week from today
            check_out_date: YYYY-MM-DD; defaults to the day after check-in
            max_price: Nightly budget ceiling in ``currency``
            adults: Number of adults (default: 2)
            currency: Currency code (default: "USD")
            limit: Maximum number of results to return

        Returns:
            Hotel dicts shaped like normalized places plus ``price``
        """
        check_in, check_out = self._stay_dates(check_in_date, check_out_date)

        params = {
            "engine": "google_hotels",
            "q": location,
            "check_in_date": check_in.isoformat(),
            "check_out_date": check_out.isoformat(),
            "adults": adults,
            "currency": currency,
            "gl": "us",
            "hl": "en",
        }
        if max_price:
            params["max_price"] = int(max_price)

        raw = self.serpapi.query(params)

        # A single exact-name match comes back as the property itself
        properties = raw.get("properties", [])
        if not properties and raw.get("type") == "hotel":
            properties = [raw]

        return [self._normalize(h) for h in properties[:limit]]

    @staticmethod
    def _stay_dates(check_in_date: Optional[str], check_out_date: Optional[str]):
        try:
            check_in = datetime.strptime(check_in_date, "%Y-%m-%d").date() if check_in_date else None
            check_out = datetime.strptime(check_out_date, "%Y-%m-%d").date() if check_out_date else None
        except ValueError:
            raise ValueError("dates must use YYYY-MM-DD")

        check_in = check_in or date.today() + timedelta(days=7)
        if not check_out or check_out <= check_in:
            check_out = check_in + timedelta(days=1)
        return check_in, check_out

    @staticmethod
    def _price(hotel: Dict[str, Any]) -> Optional[float]:
        rate = hotel.get("rate_per_night") or hotel.get("total_rate") or {}
        if rate.get("extracted_lowest"):
            return float(rate["extracted_lowest"])

        # Fallback: parse strings like "$123"
        numbers = re.findall(r"\d+(?:\.\d+)?", str(rate.get("lowest", "")).replace(",", ""))
        return float(numbers[0]) if numbers else None

    def _normalize(self, hotel: Dict[str, Any]) -> Dict[str, Any]:
        gps = hotel.get("gps_coordinates") or {}
        images = [
            img.get("original_image") or img.get("thumbnail")
            for img in (hotel.get("images") or [])[:5]
        ]

        return {
            "place_id": hotel.get("property_token"),
            "name": hotel.get("name", ""),
            "address": hotel.get("address"),
            "coordinates": {
                "lat": gps.get("latitude"),
                "lng": gps.get("longitude"),
            } if gps else None,
            "rating": hotel.get("overall_rating"),
            "review_count": hotel.get("reviews"),
            "price": self._price(hotel),
            "types": ["lodging"],
            "photos": [url for url in images if url],
            "url": hotel.get("link"),
            "amenities": hotel.get("amenities", []),
        }
