"""
Shared fixtures for the TCM report portal tests.

The app runs against a fresh ``MemoryStore`` per test, Gemini is replaced
by an ``httpx.MockTransport`` that serves queued responses, and the MuPDF
rasterizer is replaced by a synthetic bitmap so API tests stay fast.
MuPDF itself is exercised in ``test_rasterizer.py``.
"""
from __future__ import annotations

import json
import os
from typing import Any, AsyncGenerator, Callable, Dict, List

# Configure settings *before* any app module is imported.
os.environ.pop("DATABASE_URL", None)
os.environ["APP_ENV"] = "development"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["GEMINI_DEBUG"] = "false"

import httpx  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402

from tcm_portal.dependencies.services import (  # noqa: E402
    get_rasterizer,
    get_report_generator,
    get_store,
)
from tcm_portal.main import app  # noqa: E402
from tcm_portal.services.gemini_client import GeminiClient, GeminiConfig  # noqa: E402
from tcm_portal.services.pdf_export import ExportGuard  # noqa: E402
from tcm_portal.services.report_generator import ReportGenerator  # noqa: E402
from tcm_portal.services.store import MemoryStore  # noqa: E402


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def gemini_body(text: str, finish_reason: str = "STOP") -> Dict[str, Any]:
    """A ``generateContent`` response envelope carrying *text*."""
    return {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"text": text}]},
                "finishReason": finish_reason,
            }
        ]
    }


def striped_image(width: int, height: int, band: int = 20, gap: int = 12) -> Image.Image:
    """White RGBA canvas with black text-like bands separated by blank gaps."""
    pixels = np.full((height, width, 4), 255, dtype=np.uint8)
    y = 10
    while y + band < height - 10:
        pixels[y : y + band, 10 : width - 10, :3] = 0
        y += band + gap
    return Image.fromarray(pixels)


class StripedRasterizer:
    """Stands in for MuPDF: returns a fixed synthetic bitmap."""

    def __init__(self, width: int = 400, height: int = 1500) -> None:
        self.width = width
        self.height = height
        self.calls = 0

    def rasterize(self, surface, pixel_ratio: float) -> Image.Image:
        self.calls += 1
        return striped_image(self.width, self.height)


class BlankRasterizer:
    def rasterize(self, surface, pixel_ratio: float) -> Image.Image:
        return Image.new("RGBA", (300, 300), (255, 255, 255, 255))


@pytest.fixture
def make_striped() -> Callable[..., Image.Image]:
    return striped_image


@pytest.fixture
def blank_rasterizer() -> BlankRasterizer:
    return BlankRasterizer()


@pytest.fixture
def sample_report() -> Dict[str, Any]:
    """A well-formed model answer."""
    return {
        "goal": "修復脾胃，改善睡眠",
        "intro_title": "您的專屬調理方向",
        "intro_paragraphs": ["第一段說明", "第二段說明"],
        "integrative_strategy": {
            "western_analysis": "血糖波動",
            "western_strategy": "控制精緻澱粉",
            "tcm_analysis": "脾虛濕困",
            "tcm_strategy": "健脾祛濕",
        },
        "red_light_items": [{"title": "冰飲", "content": "損傷脾陽"}],
        "green_light_list": ["山藥", "茯苓"],
        "diet_rules": [{"title": "進食次序", "content": "肉->飯->菜"}],
        "lifestyle_solutions": [{"title": "早睡", "content": "11 點前入睡"}],
        "seasonal_guidance": {"february": "雨水養脾", "march": "春分疏肝"},
        "two_week_menu": {
            "Week 1 (啟動期)": {
                "Day 1": {
                    "早餐": {"內容": "小米粥", "熱量": "約 300 kcal"},
                    "午餐": {"內容": "糙米飯", "熱量": "約 500 kcal"},
                    "晚餐": {"內容": "清蒸魚", "熱量": "約 400 kcal"},
                }
            },
            "Week 2 (鞏固期)": {
                "Day 8": {
                    "早餐": {"內容": "燕麥", "熱量": "約 300 kcal"},
                    "午餐": {"內容": "雞胸", "熱量": "約 500 kcal"},
                    "晚餐": {"內容": "豆腐", "熱量": "約 400 kcal"},
                }
            },
        },
        "product_intro": "忙碌的您也能輕鬆調理",
        "product_recommendations": [
            {"line": "茶療系列", "name": "T02 深睡助眠茶", "reason": "改善睡眠", "principle": "安神"}
        ],
        "conclusion": "持之以恆",
    }


# ---------------------------------------------------------------------------
# Gemini mock
# ---------------------------------------------------------------------------

class GeminiMock:
    """Queue of handlers served by an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.handlers: List[Callable[[httpx.Request], httpx.Response]] = []
        self.requests: List[httpx.Request] = []

    def reply_json(self, body: Dict[str, Any], status_code: int = 200) -> None:
        self.handlers.append(lambda request: httpx.Response(status_code, json=body))

    def reply_text(self, text: str, finish_reason: str = "STOP") -> None:
        self.reply_json(gemini_body(text, finish_reason))

    def raise_error(self, exc: Exception) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc

        self.handlers.append(handler)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.handlers:
            return httpx.Response(500, json={"error": {"message": "no response queued"}})
        return self.handlers.pop(0)(request)

    @property
    def last_body(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def gemini_mock() -> GeminiMock:
    return GeminiMock()


@pytest.fixture
def gemini_config() -> GeminiConfig:
    return GeminiConfig(
        api_key="test-key",
        model="gemini-2.5-flash",
        base_url="https://gemini.test/v1beta",
        max_output_tokens=10000,
        timeout_ms=5000,
    )


@pytest.fixture
def gemini_client(gemini_mock: GeminiMock, gemini_config: GeminiConfig) -> GeminiClient:
    return GeminiClient(gemini_config, transport=httpx.MockTransport(gemini_mock))


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rasterizer() -> StripedRasterizer:
    return StripedRasterizer()


@pytest_asyncio.fixture
async def client(
    memory_store: MemoryStore,
    gemini_client: GeminiClient,
    rasterizer: StripedRasterizer,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the store, generator and
    rasterizer dependencies overridden.
    """
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_report_generator] = lambda: ReportGenerator(gemini_client)
    app.dependency_overrides[get_rasterizer] = lambda: rasterizer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    ExportGuard.reset()
