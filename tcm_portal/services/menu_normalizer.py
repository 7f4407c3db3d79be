"""
Two-week menu normalisation.

The model is asked for ``{"Week 1 (啟動期)": {"Day 1": {"早餐": …}}}`` but
answers in many shapes: flat ``Day N`` keys, week groupings with other
labels, day values as prose ("早餐：燕麥粥 午餐：…"), meal objects keyed in
Chinese or English, duplicated days.  Everything is folded into an
intermediate ``{day_number: DayMeals}`` map and then re-bucketed into the
two fixed weeks.

Public API
----------
normalize_menu(raw)          -> WeekMap   (never raises)
merge_menus(base, incoming)  -> WeekMap
normalize_day_meals(raw)     -> DayMeals
merge_day_meals(base, incoming) -> DayMeals
extract_meals_from_text(text)   -> Dict[str, str]
parse_day_number(key)        -> Optional[int]
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from tcm_portal.utils.helpers import PLACEHOLDER, is_blank, normalize_text

logger = logging.getLogger(__name__)

MEAL_LABELS = ("早餐", "午餐", "晚餐")
WEEK_1_LABEL = "Week 1 (啟動期)"
WEEK_2_LABEL = "Week 2 (鞏固期)"

MIN_DAY = 1
MAX_DAY = 31
LAST_BUCKETED_DAY = 14
WEEK_1_LAST_DAY = 7

_CONTENT_KEYS = ("內容", "content")
_CALORIE_KEYS = ("熱量", "calories", "kcal")

_DAY_KEY = re.compile(r"day\s*(\d{1,2})", re.IGNORECASE)
_MEAL_PATTERNS = {
    label: re.compile(
        label + r"\s*[:：]\s*(.*?)(?=(?:早餐|午餐|晚餐)\s*[:：]|\Z)",
        re.DOTALL | re.IGNORECASE,
    )
    for label in MEAL_LABELS
}
_EDGE_PUNCTUATION = re.compile(r"^[,，;；\s]+|[,，;；\s]+$")

Meal = Dict[str, str]
DayMeals = Dict[str, Meal]
WeekMap = Dict[str, Dict[str, DayMeals]]


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def parse_day_number(key: Any) -> Optional[int]:
    """``"Day 3"`` / ``"day03"`` / ``"第一週 day 12"`` → 3 / 3 / 12; else None."""
    match = _DAY_KEY.search(str(key))
    if not match:
        return None
    day = int(match.group(1))
    if day < MIN_DAY or day > MAX_DAY:
        return None
    return day


def _meal(content: str = "", calories: str = "") -> Meal:
    return {"content": content, "calories": calories}


def _is_meal_empty(meal: Optional[Meal]) -> bool:
    if not meal:
        return True
    return is_blank(meal.get("content")) and is_blank(meal.get("calories"))


def _first_present(value: Mapping[str, Any], keys) -> str:
    for key in keys:
        if key in value:
            text = normalize_text(value[key])
            if text:
                return text
    return ""


def _normalize_meal_value(value: Any) -> Meal:
    if isinstance(value, Mapping):
        content = _first_present(value, _CONTENT_KEYS)
        calories = _first_present(value, _CALORIE_KEYS)
        if content or calories:
            return _meal(content or PLACEHOLDER, calories)
    return _meal(normalize_text(value))


# ---------------------------------------------------------------------------
# Day level
# ---------------------------------------------------------------------------

def extract_meals_from_text(text: Any) -> Dict[str, str]:
    """
    Label-anchored meal extraction from prose.

    ``早餐：燕麥粥，午餐：糙米飯 晚餐: 清蒸魚`` yields all three meals; each
    capture runs until the next meal label or the end of the text.
    """
    source = normalize_text(text)
    extracted: Dict[str, str] = {}
    for label, pattern in _MEAL_PATTERNS.items():
        match = pattern.search(source)
        if not match:
            continue
        content = _EDGE_PUNCTUATION.sub("", match.group(1)).strip()
        if content:
            extracted[label] = content
    return extracted


def normalize_day_meals(raw: Any) -> DayMeals:
    """
    Normalise one day's value into exactly three meal slots.

    Text without any meal label becomes breakfast content.  Empty slots are
    filled with the placeholder.
    """
    day: DayMeals = {label: _meal() for label in MEAL_LABELS}

    def apply_extracted(source: str) -> None:
        for label, content in extract_meals_from_text(source).items():
            if _is_meal_empty(day[label]):
                day[label] = _meal(content)

    if isinstance(raw, Mapping):
        for label in MEAL_LABELS:
            if label in raw and raw[label] is not None:
                day[label] = _normalize_meal_value(raw[label])

        for key, value in raw.items():
            if key in MEAL_LABELS:
                continue
            value_text = value if isinstance(value, str) else ""
            apply_extracted(f"{key} {value_text}".strip())
            if value_text:
                apply_extracted(value_text)
    elif raw is not None:
        text = normalize_text(raw)
        apply_extracted(text)
        if text and all(_is_meal_empty(day[label]) for label in MEAL_LABELS):
            day["早餐"] = _meal(text)

    for label in MEAL_LABELS:
        if _is_meal_empty(day[label]):
            day[label] = _meal(PLACEHOLDER)
    return day


def merge_day_meals(base: DayMeals, incoming: DayMeals) -> DayMeals:
    """
    Fill slots of *base* that lack content from *incoming*.

    A slot with real content is kept; calories missing on the kept side
    are taken from the other side.
    """
    merged = dict(base)
    for label in MEAL_LABELS:
        current = merged.get(label) or {}
        other = incoming.get(label) or {}
        if _has_content(current) or not _has_content(other):
            kept, spare = current, other
        else:
            kept, spare = other, current
        if not kept and not spare:
            continue
        meal = dict(kept)
        if is_blank(meal.get("calories")) and not is_blank(spare.get("calories")):
            meal["calories"] = spare["calories"]
        if is_blank(meal.get("content")):
            meal["content"] = spare.get("content") or PLACEHOLDER
        merged[label] = meal
    return merged


def _has_content(meal: Mapping[str, Any]) -> bool:
    return not is_blank(meal.get("content"))


# ---------------------------------------------------------------------------
# Menu level
# ---------------------------------------------------------------------------

def _collect_days(raw: Any) -> Dict[int, DayMeals]:
    days: Dict[int, DayMeals] = {}

    def upsert(day_number: int, value: Any) -> None:
        normalized = normalize_day_meals(value)
        existing = days.get(day_number)
        days[day_number] = merge_day_meals(existing, normalized) if existing else normalized

    if not isinstance(raw, Mapping):
        return days

    for top_key, top_value in raw.items():
        top_day = parse_day_number(top_key)
        if top_day is not None:
            upsert(top_day, top_value)
            continue

        if not isinstance(top_value, Mapping):
            continue

        nested_days: List[int] = []
        stray_fragments: List[str] = []
        for nested_key, nested_value in top_value.items():
            nested_day = parse_day_number(nested_key)
            if nested_day is not None:
                nested_days.append(nested_day)
                upsert(nested_day, nested_value)
                continue
            value_text = nested_value if isinstance(nested_value, str) else ""
            fragment = f"{nested_key} {value_text}".strip()
            if fragment:
                stray_fragments.append(fragment)

        if nested_days and stray_fragments:
            target = min(nested_days)
            days[target] = merge_day_meals(
                days.get(target) or normalize_day_meals({}),
                normalize_day_meals(" ".join(stray_fragments)),
            )

    return days


def _bucket(days: Mapping[int, DayMeals]) -> WeekMap:
    week_1: Dict[str, DayMeals] = {}
    week_2: Dict[str, DayMeals] = {}
    for day_number in sorted(days):
        if day_number > LAST_BUCKETED_DAY:
            continue
        target = week_1 if day_number <= WEEK_1_LAST_DAY else week_2
        target[f"Day {day_number}"] = days[day_number]

    menu: WeekMap = {}
    if week_1:
        menu[WEEK_1_LABEL] = week_1
    if week_2:
        menu[WEEK_2_LABEL] = week_2
    return menu


def normalize_menu(raw: Any) -> WeekMap:
    """
    Normalise a raw ``two_week_menu`` value.

    Days 1-7 land in Week 1 and days 8-14 in Week 2.  Days 15-31 are
    recognised (so they do not leak into other days as stray text) but
    dropped.  If no day lands in either week the whole input becomes
    ``Day 1`` so the menu is never empty.
    """
    days = _collect_days(raw)
    menu = _bucket(days)
    if not menu:
        if days:
            logger.info("Menu only had days outside 1-%d: %s", LAST_BUCKETED_DAY, sorted(days))
        menu = {WEEK_1_LABEL: {"Day 1": normalize_day_meals(raw)}}
    return menu


def _menu_days(menu: Mapping[str, Mapping[str, DayMeals]]) -> Dict[int, DayMeals]:
    days: Dict[int, DayMeals] = {}
    for week in menu.values():
        for day_key, meals in week.items():
            day_number = parse_day_number(day_key)
            if day_number is None:
                continue
            existing = days.get(day_number)
            days[day_number] = merge_day_meals(existing, meals) if existing else dict(meals)
    return days


def merge_menus(base: WeekMap, incoming: WeekMap) -> WeekMap:
    """
    Combine two normalised menus day-by-day and slot-by-slot.

    A slot populated in *base* is never replaced; empty slots take the
    value from *incoming*.  Days present in only one menu are kept.
    """
    days = _menu_days(base)
    for day_number, meals in _menu_days(incoming).items():
        existing = days.get(day_number)
        days[day_number] = merge_day_meals(existing, meals) if existing else dict(meals)
    return _bucket(days) or {WEEK_1_LABEL: {"Day 1": normalize_day_meals(None)}}
