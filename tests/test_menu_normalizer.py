"""Tests for two-week menu normalisation."""
import pytest

from tcm_portal.services.menu_normalizer import (
    WEEK_1_LABEL,
    WEEK_2_LABEL,
    extract_meals_from_text,
    merge_day_meals,
    merge_menus,
    normalize_day_meals,
    normalize_menu,
    parse_day_number,
)
from tcm_portal.utils.helpers import PLACEHOLDER


def _contents(day):
    return {label: meal["content"] for label, meal in day.items()}


@pytest.mark.parametrize(
    "key, expected",
    [
        ("Day 3", 3),
        ("day03", 3),
        ("DAY 12", 12),
        ("第二週 Day 9", 9),
        ("Day 0", None),
        ("Day 32", None),
        ("Week 1", None),
        ("早餐", None),
    ],
)
def test_parse_day_number(key, expected):
    assert parse_day_number(key) == expected


# ---------------------------------------------------------------------------
# Day level
# ---------------------------------------------------------------------------

def test_extract_meals_from_text_all_labels():
    meals = extract_meals_from_text("早餐：燕麥粥，午餐：糙米飯 晚餐: 清蒸魚；")
    assert meals == {"早餐": "燕麥粥", "午餐": "糙米飯", "晚餐": "清蒸魚"}


def test_extract_meals_from_text_partial():
    assert extract_meals_from_text("晚餐：豆腐湯") == {"晚餐": "豆腐湯"}
    assert extract_meals_from_text("今天多喝水") == {}


def test_day_meals_from_mapping_keeps_calories():
    day = normalize_day_meals(
        {
            "早餐": {"內容": "小米粥", "熱量": "約 300 kcal"},
            "午餐": {"content": "雞胸", "kcal": 450},
            "晚餐": "清蒸魚",
        }
    )
    assert day["早餐"] == {"content": "小米粥", "calories": "約 300 kcal"}
    assert day["午餐"] == {"content": "雞胸", "calories": "450"}
    assert day["晚餐"] == {"content": "清蒸魚", "calories": ""}


def test_day_meals_calories_only_gets_placeholder_content():
    day = normalize_day_meals({"早餐": {"熱量": "300 kcal"}})
    assert day["早餐"] == {"content": PLACEHOLDER, "calories": "300 kcal"}


def test_day_meals_from_labelled_text():
    day = normalize_day_meals("早餐：燕麥 午餐：雞肉 晚餐：蔬菜湯")
    assert _contents(day) == {"早餐": "燕麥", "午餐": "雞肉", "晚餐": "蔬菜湯"}


def test_day_meals_unlabelled_text_becomes_breakfast():
    day = normalize_day_meals("清淡飲食為主")
    assert _contents(day) == {"早餐": "清淡飲食為主", "午餐": PLACEHOLDER, "晚餐": PLACEHOLDER}


def test_day_meals_empty_slots_filled():
    for raw in (None, {}, ""):
        day = normalize_day_meals(raw)
        assert _contents(day) == {"早餐": PLACEHOLDER, "午餐": PLACEHOLDER, "晚餐": PLACEHOLDER}


def test_day_meals_text_under_unknown_key():
    day = normalize_day_meals({"早餐": "粥", "menu": "午餐：麵 晚餐：飯"})
    assert _contents(day) == {"早餐": "粥", "午餐": "麵", "晚餐": "飯"}


def test_merge_day_meals_keeps_populated_slots():
    base = normalize_day_meals({"早餐": "粥"})
    incoming = normalize_day_meals({"早餐": "麵包", "午餐": "飯"})
    merged = merge_day_meals(base, incoming)
    assert _contents(merged) == {"早餐": "粥", "午餐": "飯", "晚餐": PLACEHOLDER}


def test_merge_day_meals_takes_content_over_calories_only_slot():
    base = normalize_day_meals({"早餐": {"熱量": "300"}})
    incoming = normalize_day_meals({"早餐": "粥"})

    merged = merge_day_meals(base, incoming)
    assert merged["早餐"]["content"] == "粥"
    assert merged["早餐"]["calories"] == "300"


def test_merge_day_meals_fills_missing_calories_on_kept_slot():
    base = normalize_day_meals({"午餐": "飯"})
    incoming = normalize_day_meals({"午餐": {"content": "麵", "calories": "450"}})

    merged = merge_day_meals(base, incoming)
    assert merged["午餐"] == {"content": "飯", "calories": "450"}


# ---------------------------------------------------------------------------
# Menu level
# ---------------------------------------------------------------------------

def test_flat_days_are_bucketed_into_weeks():
    menu = normalize_menu(
        {
            "Day 1": {"早餐": "粥", "午餐": "飯", "晚餐": "魚"},
            "Day 9": "早餐：燕麥 午餐：雞 晚餐：湯",
        }
    )
    assert list(menu) == [WEEK_1_LABEL, WEEK_2_LABEL]
    assert _contents(menu[WEEK_1_LABEL]["Day 1"]) == {"早餐": "粥", "午餐": "飯", "晚餐": "魚"}
    assert _contents(menu[WEEK_2_LABEL]["Day 9"]) == {"早餐": "燕麥", "午餐": "雞", "晚餐": "湯"}


def test_nested_weeks_with_arbitrary_labels_are_rebucketed():
    menu = normalize_menu(
        {
            "第一階段": {"Day 2": "早餐：a", "Day 8": "早餐：b"},
            "Phase 2": {"Day 14": "早餐：c"},
        }
    )
    assert list(menu[WEEK_1_LABEL]) == ["Day 2"]
    assert list(menu[WEEK_2_LABEL]) == ["Day 8", "Day 14"]


def test_days_are_sorted_within_week():
    menu = normalize_menu({"Day 5": "早餐：e", "Day 1": "早餐：a", "Day 3": "早餐：c"})
    assert list(menu[WEEK_1_LABEL]) == ["Day 1", "Day 3", "Day 5"]
    assert WEEK_2_LABEL not in menu


def test_duplicate_days_are_merged():
    menu = normalize_menu(
        {
            "Week 1": {"Day 1": {"早餐": "粥"}},
            "day1": {"午餐": "飯"},
        }
    )
    assert _contents(menu[WEEK_1_LABEL]["Day 1"]) == {"早餐": "粥", "午餐": "飯", "晚餐": PLACEHOLDER}


def test_out_of_range_days_are_dropped():
    menu = normalize_menu({"Day 0": "早餐：x", "Day 15": "早餐：y", "Day 2": "早餐：z"})
    assert list(menu) == [WEEK_1_LABEL]
    assert list(menu[WEEK_1_LABEL]) == ["Day 2"]
    assert menu[WEEK_1_LABEL]["Day 2"]["早餐"]["content"] == "z"


def test_stray_fragments_attach_to_earliest_nested_day():
    menu = normalize_menu(
        {"Week 1": {"Day 4": {"午餐": "飯"}, "Day 3": {"午餐": "麵"}, "備註": "早餐：粥"}}
    )
    assert menu[WEEK_1_LABEL]["Day 3"]["早餐"]["content"] == "粥"
    assert menu[WEEK_1_LABEL]["Day 4"]["早餐"]["content"] == PLACEHOLDER


@pytest.mark.parametrize("raw", [None, "", [], {}, {"note": 1}])
def test_unusable_menu_falls_back_to_day_one(raw):
    menu = normalize_menu(raw)
    assert list(menu) == [WEEK_1_LABEL]
    assert list(menu[WEEK_1_LABEL]) == ["Day 1"]


def test_plain_text_menu_becomes_day_one():
    menu = normalize_menu("早餐：粥 午餐：飯")
    assert _contents(menu[WEEK_1_LABEL]["Day 1"]) == {"早餐": "粥", "午餐": "飯", "晚餐": PLACEHOLDER}


def test_normalize_menu_is_idempotent(sample_report):
    once = normalize_menu(sample_report["two_week_menu"])
    assert normalize_menu(once) == once


# ---------------------------------------------------------------------------
# merge_menus
# ---------------------------------------------------------------------------

def test_merge_menus_fills_gaps_and_keeps_days():
    base = normalize_menu({"Day 1": {"早餐": "粥"}})
    incoming = normalize_menu({"Day 1": {"早餐": "麵包", "晚餐": "魚"}, "Day 8": "早餐：燕麥"})
    merged = merge_menus(base, incoming)

    assert _contents(merged[WEEK_1_LABEL]["Day 1"]) == {"早餐": "粥", "午餐": PLACEHOLDER, "晚餐": "魚"}
    assert merged[WEEK_2_LABEL]["Day 8"]["早餐"]["content"] == "燕麥"


def test_merge_empty_menus_yields_placeholder_day():
    merged = merge_menus({}, {})
    assert _contents(merged[WEEK_1_LABEL]["Day 1"]) == {
        "早餐": PLACEHOLDER,
        "午餐": PLACEHOLDER,
        "晚餐": PLACEHOLDER,
    }
