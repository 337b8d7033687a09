# backend/tripstream/services/youtube_service.py

import requests
from typing import Dict, Any, List, Optional

from tripstream.core.config_loader import settings
from tripstream.core.errors import ServiceNotConfigured
from tripstream.core.logger import logger


class YouTubeService:
    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10):
        self.api_key = api_key if api_key is not None else settings.YOUTUBE_API_KEY
        self.timeout = timeout

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ServiceNotConfigured("YouTube", "YOUTUBE_API_KEY")
        resp = requests.get(
            f"{self.BASE_URL}/{path}",
            params={**params, "key": self.api_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    # -------------------------------------------------------
    # SEARCH
    # -------------------------------------------------------
    def search_videos(self, query: str, max_results: int = 10, short: bool = True) -> List[Dict[str, Any]]:
        data = self._get("search", {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": min(max_results, 25),
            "videoDuration": "short" if short else "medium",
            "relevanceLanguage": "en",
            "safeSearch": "strict",
        })
        videos = [self._normalize(item["id"]["videoId"], item.get("snippet", {}))
                  for item in data.get("items", [])
                  if item.get("id", {}).get("videoId")]
        logger.info(f"YouTube search '{query}' -> {len(videos)} videos")
        return videos

    def get_video(self, video_id: str) -> Optional[Dict[str, Any]]:
        data = self._get("videos", {"part": "snippet", "id": video_id})
        items = data.get("items") or []
        if not items:
            return None
        return self._normalize(video_id, items[0].get("snippet", {}))

    # -------------------------------------------------------
    # FILTERING
    # -------------------------------------------------------
    @staticmethod
    def filter_by_city(videos: List[Dict[str, Any]], city: str) -> List[Dict[str, Any]]:
        """Keep videos whose title or description mentions the city; fall back to all."""
        needle = city.lower().split(",")[0].strip()
        matched = [
            v for v in videos
            if needle in v["title"].lower() or needle in v["description"].lower()
        ]
        return matched or videos

    @staticmethod
    def _normalize(video_id: str, snippet: Dict[str, Any]) -> Dict[str, Any]:
        thumbs = snippet.get("thumbnails") or {}
        thumb = thumbs.get("high") or thumbs.get("medium") or thumbs.get("default") or {}
        return {
            "videoId": video_id,
            "title": snippet.get("title", ""),
            "description": snippet.get("description", ""),
            "thumbnailUrl": thumb.get("url", ""),
            "channelTitle": snippet.get("channelTitle", ""),
            "publishedAt": snippet.get("publishedAt"),
        }
