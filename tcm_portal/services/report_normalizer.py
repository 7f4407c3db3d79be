"""
Coerce an extracted JSON value into a fully typed ``ReportPayload``.

Model output routinely omits fields, nests strings one level too deep or
returns numbers where text was asked for.  ``normalize_report`` accepts any
value and never raises: missing strings become ``""``, missing lists become
``[]`` and the two-week menu goes through ``menu_normalizer``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

from tcm_portal.models.schemas import ReportPayload
from tcm_portal.services.menu_normalizer import normalize_menu
from tcm_portal.utils.helpers import normalize_text

logger = logging.getLogger(__name__)

_TITLED_FIELDS = ("title", "content")
_PRODUCT_FIELDS = ("line", "name", "reason", "principle")


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def normalize_string_list(value: Any) -> List[str]:
    """List of non-blank strings; a bare string becomes a one-item list."""
    if isinstance(value, str):
        value = [value]
    items = [normalize_text(item) for item in _as_list(value)]
    return [item for item in items if item]


def normalize_object_list(value: Any, fields: Sequence[str]) -> List[Dict[str, str]]:
    """Project each entry onto *fields*; entries with every field blank are dropped."""
    result = []
    for item in _as_list(value):
        source = _as_mapping(item)
        entry = {field: normalize_text(source.get(field)) for field in fields}
        if any(entry.values()):
            result.append(entry)
    return result


def normalize_report(raw: Any) -> ReportPayload:
    """Build a ``ReportPayload`` from any JSON-compatible value."""
    payload = _as_mapping(raw)
    if not payload and raw not in (None, {}):
        logger.warning("Report payload is not an object (got %s)", type(raw).__name__)

    strategy = _as_mapping(payload.get("integrative_strategy"))
    seasonal = _as_mapping(payload.get("seasonal_guidance"))

    return ReportPayload(
        goal=normalize_text(payload.get("goal")),
        intro_title=normalize_text(payload.get("intro_title")),
        intro_paragraphs=normalize_string_list(payload.get("intro_paragraphs")),
        integrative_strategy={
            "western_analysis": normalize_text(strategy.get("western_analysis")),
            "western_strategy": normalize_text(strategy.get("western_strategy")),
            "tcm_analysis": normalize_text(strategy.get("tcm_analysis")),
            "tcm_strategy": normalize_text(strategy.get("tcm_strategy")),
        },
        red_light_items=normalize_object_list(payload.get("red_light_items"), _TITLED_FIELDS),
        green_light_list=normalize_string_list(payload.get("green_light_list")),
        diet_rules=normalize_object_list(payload.get("diet_rules"), _TITLED_FIELDS),
        lifestyle_solutions=normalize_object_list(
            payload.get("lifestyle_solutions"), _TITLED_FIELDS
        ),
        seasonal_guidance={
            "february": normalize_text(seasonal.get("february")),
            "march": normalize_text(seasonal.get("march")),
        },
        two_week_menu=normalize_menu(payload.get("two_week_menu")),
        product_intro=normalize_text(payload.get("product_intro")),
        product_recommendations=normalize_object_list(
            payload.get("product_recommendations"), _PRODUCT_FIELDS
        ),
        conclusion=normalize_text(payload.get("conclusion")),
    )
