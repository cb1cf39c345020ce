"""
Step 2: turn the merged input into a sectioned narration script.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from shared.logging import get_logger
from shared.models import Script, ScriptSection
from modules.pipeline.config import WORDS_PER_MINUTE
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.generate_script")

ERROR_CODE = "ERR_SCRIPT_GEN"


def word_count(text: str) -> int:
    return len(text.split())


def estimate_duration_ms(words: int) -> int:
    """Spoken duration at WORDS_PER_MINUTE."""
    return round(words / WORDS_PER_MINUTE * 60 * 1000)


def _pick(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    # Models answer in snake_case or camelCase
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def parse_script(raw: Dict[str, Any], fallback_title: str) -> Script:
    """
    Build a Script from the model's JSON.

    Missing ids, orders and hints get defaults; durations are derived from
    word counts rather than trusted from the model.
    """
    sections: List[ScriptSection] = []
    for idx, item in enumerate(raw.get("sections") or []):
        narration = _pick(item, "narration_text", "narrationText", default="") or ""
        pace = _pick(item, "pace_hint", "paceHint", default="normal")
        sections.append(ScriptSection(
            id=item.get("id") or f"section_{idx:03d}",
            order=_pick(item, "order", default=idx),
            headline=item.get("headline") or "",
            narration_text=narration,
            visual_keywords=_pick(item, "visual_keywords", "visualKeywords", default=[]) or [],
            on_screen_text=_pick(item, "on_screen_text", "onScreenText"),
            pace_hint=pace if pace in ("slow", "normal", "fast") else "normal",
            estimated_duration_ms=estimate_duration_ms(word_count(narration)),
        ))

    total_words = sum(word_count(s.narration_text) for s in sections)
    return Script(
        title=raw.get("title") or fallback_title,
        sections=sections,
        total_word_count=total_words,
        estimated_duration_ms=estimate_duration_ms(total_words),
        generated_at=datetime.now(timezone.utc),
    )


async def generate_script(ctx: PipelineContext) -> StepResult:
    """Generate `script` and its `outline` (section headlines) with the script writer."""
    try:
        merged_text = get_artifact(ctx, "merged_input_text") or ""
        if not merged_text.strip():
            return step_failure(ERROR_CODE, "No merged input text available")

        target_words = ctx.project.target_minutes * WORDS_PER_MINUTE
        raw = await ctx.services.script_writer.write_script(merged_text, ctx.project, target_words)
        script = parse_script(raw, ctx.project.title)

        narrated = [s for s in script.sections if s.narration_text.strip()]
        if not narrated:
            return step_failure(ERROR_CODE, "Script has no narrated sections")

        await ctx.services.storage.upload(
            f"{ctx.base_path}/script/script.json",
            json.dumps(script.model_dump(mode="json"), indent=2).encode("utf-8"),
            content_type="application/json"
        )
        logger.info(
            "Script generated",
            extra={
                "job_id": str(ctx.job_id),
                "sections": len(script.sections),
                "word_count": script.total_word_count,
                "target_words": target_words,
            }
        )
        return step_success({
            "script": script,
            "outline": [s.headline for s in script.sections],
        })
    except Exception as e:
        logger.error("Script generation failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error generating script")
