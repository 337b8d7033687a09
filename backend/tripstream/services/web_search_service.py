# backend/tripstream/services/web_search_service.py

import requests
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

from tripstream.core.config_loader import settings
from tripstream.core.errors import ServiceNotConfigured


class WebSearchService:
    """Google Programmable Search Engine (Custom Search JSON API)."""

    BASE_URL = "https://www.googleapis.com/customsearch/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        engine_id: Optional[str] = None,
        timeout: float = 10
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_SEARCH_API_KEY
        self.engine_id = engine_id if engine_id is not None else settings.GOOGLE_SEARCH_ENGINE_ID
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    def search(self, query: str, num_results: int = 5) -> List[Dict[str, Any]]:
        if not self.configured:
            raise ServiceNotConfigured("Web search", "GOOGLE_SEARCH_API_KEY / GOOGLE_SEARCH_ENGINE_ID")

        resp = requests.get(
            self.BASE_URL,
            params={
                "key": self.api_key,
                "cx": self.engine_id,
                "q": query,
                "num": min(num_results, 10),  # CSE max is 10
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()

        return [
            {
                "title": item.get("title", ""),
                "url": item["link"],
                "snippet": item.get("snippet", ""),
                "source": urlparse(item["link"]).netloc.replace("www.", ""),
            }
            for item in resp.json().get("items", [])
            if item.get("link")
        ]
