"""
Generation pipeline: diagnosis → prompt → Gemini → extract → normalize.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from tcm_portal.models.schemas import ReportMeta, ReportPayload
from tcm_portal.services.errors import NotJsonError, OutputTruncatedError
from tcm_portal.services.gemini_client import GeminiClient, GenerationResult
from tcm_portal.services.json_extractor import extract_json
from tcm_portal.services.prompt_builder import (
    DiagnosisInput,
    build_prompt,
    diagnosis_summary,
    format_date_zh,
    report_response_schema,
    strategy_level,
)
from tcm_portal.services.report_normalizer import normalize_report

logger = logging.getLogger(__name__)


@dataclass
class GeneratedReport:
    report: ReportPayload
    meta: ReportMeta
    finish_reason: Optional[str] = None


def parse_generation(result: GenerationResult, debug: bool = False) -> Any:
    """
    Extract JSON from a generation result.

    A ``MAX_TOKENS`` finish only matters when extraction fails; output that
    was cut off but still parses is returned as-is.
    """
    try:
        parsed = extract_json(result.text)
    except NotJsonError:
        if result.truncated:
            logger.warning("Gemini output truncated at token limit (model=%s)", result.model)
            raise OutputTruncatedError(raw_text=result.text)
        raise
    if debug:
        logger.info("[Gemini Debug] Parsed response (%s): %r", result.model, parsed)
    return parsed


class ReportGenerator:
    """Runs one diagnosis through the model and returns a normalized report."""

    def __init__(self, client: Optional[GeminiClient] = None) -> None:
        self.client = client or GeminiClient()

    async def generate_raw(
        self,
        prompt: str,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        """Prompt passthrough: returns the extracted JSON in whatever shape it came."""
        result = await self.client.generate(prompt, model=model, timeout_ms=timeout_ms)
        return parse_generation(result, debug=self.client.config.debug)

    async def generate(
        self,
        diagnosis: DiagnosisInput,
        meta: Optional[ReportMeta] = None,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        today: Optional[date] = None,
    ) -> GeneratedReport:
        today = today or date.today()
        level = strategy_level(diagnosis.all_scores)
        prompt = build_prompt(diagnosis, today=today)

        logger.info(
            "Generating report: primary=%s min_score=%d",
            diagnosis.primary.name,
            min(diagnosis.all_scores),
        )
        result = await self.client.generate(
            prompt,
            model=model,
            timeout_ms=timeout_ms,
            json_schema=report_response_schema(),
        )
        parsed = parse_generation(result, debug=self.client.config.debug)
        report = normalize_report(parsed)

        base_meta = meta or ReportMeta()
        full_meta = base_meta.model_copy(update={
            "strategy_text": level.text,
            "strategy_color": level.color,
            "diagnosis_summary": diagnosis_summary(diagnosis),
            "date_text": base_meta.date_text or format_date_zh(today),
        })
        return GeneratedReport(report=report, meta=full_meta, finish_reason=result.finish_reason)
