# backend/tripstream/services/serpapi_service.py

import requests
from typing import Dict, Any, Optional

from tripstream.core.config_loader import settings
from tripstream.core.errors import ServiceNotConfigured


class SerpAPIService:
    BASE_URL = "https://serpapi.com/search"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 20):
        self.api_key = api_key if api_key is not None else settings.SERPAPI_KEY
        self.timeout = timeout

    def query(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ServiceNotConfigured("SerpAPI", "SERPAPI_KEY")

        response = requests.get(
            self.BASE_URL,
            params={**params, "api_key": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        # SerpAPI reports engine-level failures with 200 + {"error": ...}
        if data.get("error"):
            raise RuntimeError(f"SerpAPI error: {data['error']}")
        return data
