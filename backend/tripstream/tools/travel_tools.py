# backend/tripstream/tools/travel_tools.py

import asyncio
import json
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from tripstream.core.config_loader import Settings
from tripstream.core.logger import get_logger
from tripstream.models.card_models import SmartVideoResult, VideoAnalysis, VideoResult
from tripstream.models.tool_models import Citation, ToolResult, utc_now_iso
from tripstream.tools.registry import Tool, ToolContext, ToolRegistry
from tripstream.tools.result_cache import ResultCache


log = get_logger("tools")


# ----------------------------------------------------------
# ARGUMENT SCHEMAS
# ----------------------------------------------------------
class DateWindow(BaseModel):
    start: str = Field(description="Start date in YYYY-MM-DD format")
    end: str = Field(description="End date in YYYY-MM-DD format")


class SearchPlacesArgs(BaseModel):
    query: str = Field(description='What to search for (e.g., "romantic restaurants")')
    location: str = Field(description="City or area to search in")
    type: Literal["hotel", "restaurant", "attraction", "cafe", "bar", "all"] = Field(
        "all", description="Type of place to search for"
    )
    price_level: Optional[List[int]] = Field(
        None, description="Price levels to keep (1=cheap, 4=expensive)"
    )
    min_rating: Optional[float] = Field(None, ge=1, le=5, description="Minimum rating (1-5)")


class PlaceDetailsArgs(BaseModel):
    place_id: str = Field(description="Google Places ID")


class SearchHotelsArgs(BaseModel):
    location: str = Field(description="City or neighborhood")
    check_in_date: Optional[str] = Field(None, description="Check-in date, YYYY-MM-DD")
    check_out_date: Optional[str] = Field(None, description="Check-out date, YYYY-MM-DD")
    max_price: Optional[float] = Field(None, gt=0, description="Maximum nightly price in USD")
    adults: int = Field(2, ge=1, le=10)


class WeatherArgs(BaseModel):
    location: str = Field(description='City name or coordinates (e.g., "Paris" or "48.8566,2.3522")')
    dates: Optional[DateWindow] = None


class WebSearchArgs(BaseModel):
    query: str = Field(description="The search query")
    num_results: int = Field(5, ge=1, le=10, description="Number of results to return")


class SearchVideosArgs(BaseModel):
    query: str = Field(description="What the traveler wants to see (e.g., \"street food\")")
    location: str = Field(description="City or destination name")
    country: Optional[str] = None
    traveler_type: Optional[str] = Field(None, description="couple, family, solo, friends")


class AnalyzeVideoArgs(BaseModel):
    video_id: str = Field(description="YouTube video ID")
    focus: Optional[str] = Field(None, description="What the traveler cares about")


class VideoGuidesArgs(BaseModel):
    location: str = Field(description="City or destination name")
    topics: List[str] = Field(
        min_length=1, max_length=5,
        description="1-5 focused guide topics, e.g. [\"best areas to stay\", \"night markets\"]",
    )


# ----------------------------------------------------------
# PLACES / HOTELS
# ----------------------------------------------------------
async def search_places(args: SearchPlacesArgs, ctx: ToolContext) -> ToolResult:
    maps = ctx.service("maps")
    key = (
        "search_places", args.query.lower(), args.location.lower(), args.type,
        tuple(args.price_level or ()), args.min_rating,
    )

    async def fetch() -> ToolResult:
        places = await asyncio.to_thread(
            maps.search_places,
            args.query,
            args.location,
            place_type=args.type,
            min_rating=args.min_rating,
            price_levels=args.price_level,
        )
        return ToolResult.ok(places)

    return await ctx.cached(key, fetch)


async def get_place_details(args: PlaceDetailsArgs, ctx: ToolContext) -> ToolResult:
    maps = ctx.service("maps")

    async def fetch() -> ToolResult:
        place = await asyncio.to_thread(maps.get_place_details, args.place_id)
        return ToolResult.ok(place)

    return await ctx.cached(("place_details", args.place_id), fetch)


async def search_hotels(args: SearchHotelsArgs, ctx: ToolContext) -> ToolResult:
    hotels = ctx.service("hotels")
    key = (
        "search_hotels", args.location.lower(), args.check_in_date,
        args.check_out_date, args.max_price, args.adults,
    )

    async def fetch() -> ToolResult:
        found = await asyncio.to_thread(
            hotels.search_hotels,
            args.location,
            check_in_date=args.check_in_date,
            check_out_date=args.check_out_date,
            max_price=args.max_price,
            adults=args.adults,
        )
        sources = [
            Citation(url=h["url"], title=h["name"], snippet=h.get("address"), confidence=0.9)
            for h in found if h.get("url")
        ]
        return ToolResult.ok(found, sources)

    return await ctx.cached(key, fetch)


# ----------------------------------------------------------
# WEATHER / WEB
# ----------------------------------------------------------
async def get_weather(args: WeatherArgs, ctx: ToolContext) -> ToolResult:
    weather = ctx.service("weather")
    start = args.dates.start if args.dates else None
    end = args.dates.end if args.dates else None

    async def fetch() -> ToolResult:
        try:
            forecast = await asyncio.to_thread(weather.get_forecast, args.location, start, end)
        except LookupError as e:
            return ToolResult.failure(str(e))
        source = Citation(
            url="https://open-meteo.com",
            title="Open-Meteo Weather API",
            snippet=f"Weather forecast for {args.location}",
            confidence=0.95,
        )
        return ToolResult.ok(forecast, [source])

    return await ctx.cached(("weather", args.location.lower(), start, end), fetch)


async def search_web(args: WebSearchArgs, ctx: ToolContext) -> ToolResult:
    web = ctx.service("web")

    if not web.configured:
        # Keep the turn useful: point the user at a plain search instead of failing
        return ToolResult.ok([], [Citation(
            url="https://google.com/search?q=" + args.query.replace(" ", "+"),
            title="Search Configuration Required",
            snippet="Google Search API not configured. Set GOOGLE_SEARCH_API_KEY and GOOGLE_SEARCH_ENGINE_ID.",
            confidence=0,
        )])

    async def fetch() -> ToolResult:
        results = await asyncio.to_thread(web.search, args.query, args.num_results)
        sources = [
            Citation(url=r["url"], title=r["title"], snippet=r["snippet"], confidence=0.8)
            for r in results
        ]
        return ToolResult.ok(results, sources)

    return await ctx.cached(("web", args.query.lower(), args.num_results), fetch)


# ----------------------------------------------------------
# VIDEOS
# ----------------------------------------------------------
def build_video_query(args: SearchVideosArgs) -> str:
    parts = [args.location, args.query]
    if args.traveler_type:
        parts.append(args.traveler_type)
    parts.append("travel #shorts")
    return " ".join(p.strip() for p in parts if p and p.strip())


async def search_videos(args: SearchVideosArgs, ctx: ToolContext) -> ToolResult:
    youtube = ctx.service("youtube")
    query = build_video_query(args)

    async def fetch() -> ToolResult:
        found = await asyncio.to_thread(youtube.search_videos, query, 10)
        videos = youtube.filter_by_city(found, args.location)[:6]
        return ToolResult.ok(videos)

    return await ctx.cached(("videos", query.lower()), fetch)


VIDEO_ANALYSIS_PROMPT = """You analyze travel videos for a trip planner.
From the video title and description below, return ONLY a JSON object:
{{"summary": "<2 sentences>", "highlights": ["<takeaway>", ...],
  "places": [{{"name": "<place>", "type": "restaurant|attraction|hotel|landmark|other", "note": "<why it matters>"}}]}}

Title: {title}
Channel: {channel}
Description:
{description}
{focus}"""


def _extract_json_object(text: str) -> dict:
    fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    raw = fenced.group(1) if fenced else text[text.find("{"): text.rfind("}") + 1]
    return json.loads(raw)


async def analyze_video(args: AnalyzeVideoArgs, ctx: ToolContext) -> ToolResult:
    youtube = ctx.service("youtube")
    llm = ctx.service("llm")

    async def fetch() -> ToolResult:
        video = await asyncio.to_thread(youtube.get_video, args.video_id)
        if video is None:
            return ToolResult.failure(f"Video not found: {args.video_id}")

        prompt = VIDEO_ANALYSIS_PROMPT.format(
            title=video["title"],
            channel=video["channelTitle"],
            description=video["description"][:3000],
            focus=f"\nTraveler focus: {args.focus}" if args.focus else "",
        )
        raw = await llm.complete([{"role": "user", "content": prompt}], max_tokens=600)
        try:
            analysis = VideoAnalysis(video_id=args.video_id, analyzed_at=utc_now_iso(), **_extract_json_object(raw))
        except (ValueError, TypeError, ValidationError) as e:
            log.warning(f"Unusable video analysis for {args.video_id}: {e}")
            return ToolResult.failure("Could not analyze this video")

        source = Citation(
            url=f"https://www.youtube.com/watch?v={args.video_id}",
            title=video["title"],
            snippet=analysis.summary,
            confidence=0.7,
        )
        return ToolResult.ok(analysis.model_dump(by_alias=True), [source])

    return await ctx.cached(("video_analysis", args.video_id, args.focus), fetch)


async def find_video_guides(args: VideoGuidesArgs, ctx: ToolContext) -> ToolResult:
    youtube = ctx.service("youtube")
    titles = [f"{args.location} {topic}".strip() for topic in args.topics[:5]]

    async def fetch() -> ToolResult:
        batches = await asyncio.gather(*(
            asyncio.to_thread(youtube.search_videos, title, 3, False) for title in titles
        ))
        seen = set()
        videos: List[VideoResult] = []
        for batch in batches:
            for raw in batch[:2]:
                if raw["videoId"] in seen:
                    continue
                seen.add(raw["videoId"])
                videos.append(VideoResult.model_validate(raw))

        result = SmartVideoResult(search_titles=titles, videos=videos)
        return ToolResult.ok(result.model_dump(by_alias=True))

    return await ctx.cached(("video_guides", tuple(t.lower() for t in titles)), fetch)


# ----------------------------------------------------------
# REGISTRY WIRING
# ----------------------------------------------------------
TRAVEL_TOOLS = [
    Tool(
        name="search_web",
        description="Search the web for travel information, destination guides, and general "
                    "queries. Use this for broad research questions.",
        args_model=WebSearchArgs,
        executor=search_web,
    ),
    Tool(
        name="get_weather",
        description="Get weather forecast and recent averages for a location.",
        args_model=WeatherArgs,
        executor=get_weather,
    ),
    Tool(
        name="search_places",
        description="Search for restaurants, attractions, cafes, bars or other points of interest. "
                    "Results are shown to the user as cards automatically.",
        args_model=SearchPlacesArgs,
        executor=search_places,
    ),
    Tool(
        name="get_place_details",
        description="Get detailed information about a specific place including opening hours and photos.",
        args_model=PlaceDetailsArgs,
        executor=get_place_details,
    ),
    Tool(
        name="search_hotels",
        description="Search hotels with nightly prices for a location and stay dates. "
                    "Results are shown to the user as cards automatically.",
        args_model=SearchHotelsArgs,
        executor=search_hotels,
    ),
    Tool(
        name="search_videos",
        description="Find short travel videos about a destination topic.",
        args_model=SearchVideosArgs,
        executor=search_videos,
    ),
    Tool(
        name="analyze_video",
        description="Summarize one travel video: highlights and the places it features.",
        args_model=AnalyzeVideoArgs,
        executor=analyze_video,
    ),
    Tool(
        name="find_video_guides",
        description="Find longer guide videos for 1-5 distinct topics of a multi-part question.",
        args_model=VideoGuidesArgs,
        executor=find_video_guides,
    ),
]


def build_tool_registry(context: ToolContext, config: Settings) -> ToolRegistry:
    registry = ToolRegistry(context, timeout_seconds=config.tool_timeout_seconds)
    for tool in TRAVEL_TOOLS:
        registry.register(tool)
    return registry


def build_tool_context(config: Settings, chat_model) -> ToolContext:
    # Imported here so tests can build registries without the HTTP service stack
    from tripstream.services.google_maps_service import GoogleMapsService
    from tripstream.services.hotel_service import HotelService
    from tripstream.services.weather_service import WeatherService
    from tripstream.services.web_search_service import WebSearchService
    from tripstream.services.youtube_service import YouTubeService

    cache = ResultCache(
        ttl_seconds=config.tool_cache_ttl_seconds,
        max_entries=config.tool_cache_max_entries,
    )
    return ToolContext(cache=cache, services={
        "maps": GoogleMapsService(config.GOOGLE_MAPS_API_KEY),
        "hotels": HotelService(),
        "weather": WeatherService(),
        "web": WebSearchService(config.GOOGLE_SEARCH_API_KEY, config.GOOGLE_SEARCH_ENGINE_ID),
        "youtube": YouTubeService(config.YOUTUBE_API_KEY),
        "llm": chat_model,
    })
