# backend/tripstream/utils/itinerary_parser.py

import json
import re
from typing import Optional

from pydantic import ValidationError

from tripstream.core.logger import get_logger
from tripstream.models.card_models import ItineraryResponse


log = get_logger("itinerary")

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
RAW_ITINERARY_RE = re.compile(r"\{[\s\S]*\"tripSummary\"[\s\S]*\"days\"[\s\S]*\}")


def parse_itinerary(text: str) -> Optional[ItineraryResponse]:
    """
    Pull the itinerary JSON out of a model answer.

    Looks for a ```json fence first, then for a bare object mentioning both
    ``tripSummary`` and ``days``. Returns None when nothing usable is found;
    a broken block is logged, never raised, since the prose answer still
    stands on its own.
    """
    if not text:
        return None

    fenced = FENCED_JSON_RE.search(text)
    if fenced:
        raw = fenced.group(1)
    else:
        bare = RAW_ITINERARY_RE.search(text)
        if not bare:
            return None
        raw = bare.group(0)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        log.warning(f"Failed to parse itinerary JSON: {e}")
        return None

    if not isinstance(data, dict) or "tripSummary" not in data or not isinstance(data.get("days"), list):
        return None

    try:
        return ItineraryResponse.model_validate(data)
    except ValidationError as e:
        log.warning(f"Itinerary JSON does not match schema: {e.error_count()} errors")
        return None
