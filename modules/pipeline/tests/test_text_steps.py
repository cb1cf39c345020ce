"""
Tests for the ingest, script, voice and alignment steps.
"""

import json
from uuid import uuid4

import pytest

from shared.models import ProjectInput, Script, ScriptSection, WhisperSegment, WhisperWord
from modules.pipeline.context import add_artifact
from modules.pipeline.services import Transcription
from modules.pipeline.steps.generate_script import estimate_duration_ms, generate_script, parse_script
from modules.pipeline.steps.generate_voice import generate_voice, select_voice
from modules.pipeline.steps.ingest_inputs import ingest_inputs
from modules.pipeline.steps.run_alignment import format_srt_time, format_vtt_time, generate_srt, run_alignment


def _input(project, type_, **fields):
    return ProjectInput(id=uuid4(), project_id=project.id, type=type_, **fields)


# ingest_inputs

@pytest.mark.asyncio
async def test_ingest_merges_header_prompt_and_inputs(ctx, job_store, project, storage):
    storage.blobs["project-assets/uploads/notes.txt"] = b"Basalt is common."
    job_store.add_project_input(_input(project, "text", title="Outline", content_text="Start with Hawaii."))
    job_store.add_project_input(_input(project, "file", title="Notes", storage_path="uploads/notes.txt"))
    job_store.add_project_input(_input(project, "url", content_text="https://example.com/lava"))
    ctx.services.web.fetch_text.return_value = "Lava flows slowly."

    result = await ingest_inputs(ctx)

    assert result.success
    text = result.data["merged_input_text"]
    assert text.startswith("# Project: How Volcanoes Work\nNiche: science\nTarget Duration: 1 minutes\n")
    assert "## Prompt\nExplain magma chambers and eruptions." in text
    assert "## Input: Outline\nStart with Hawaii." in text
    assert "## Input: Notes\nBasalt is common." in text
    assert "Source: https://example.com/lava\n\nLava flows slowly." in text
    assert text.index("Start with Hawaii.") < text.index("Basalt") < text.index("Lava flows")
    assert storage.blobs[f"{ctx.base_path}/inputs/merged_input.txt"] == text.encode("utf-8")


@pytest.mark.asyncio
async def test_ingest_falls_back_to_bare_url(ctx, job_store, project):
    job_store.add_project_input(_input(project, "url", title="Article", content_text="https://example.com/x"))
    ctx.services.web.fetch_text.side_effect = ConnectionError("timeout")

    result = await ingest_inputs(ctx)

    assert result.success
    assert "## Input: Article\nURL: https://example.com/x" in result.data["merged_input_text"]


@pytest.mark.asyncio
async def test_ingest_transcribes_audio_files(ctx, job_store, project, storage):
    storage.blobs["project-assets/uploads/memo.mp3"] = b"ID3"
    job_store.add_project_input(_input(project, "file", storage_path="project-assets/uploads/memo.mp3"))
    ctx.services.transcriber.transcribe.return_value = Transcription(
        segments=[WhisperSegment(id=0, start=0.0, end=2.5, text=" Volcanoes erupt. ")]
    )

    result = await ingest_inputs(ctx)

    text = result.data["merged_input_text"]
    assert "[Audio Transcription - Duration: 2.50s]" in text
    assert "[0.00s - 2.50s] Volcanoes erupt." in text


@pytest.mark.asyncio
async def test_ingest_skips_unsupported_files(ctx, job_store, project, storage):
    job_store.add_project_input(_input(project, "file", storage_path="uploads/deck.pdf"))

    result = await ingest_inputs(ctx)

    assert result.success
    storage.download.assert_not_awaited()


@pytest.mark.asyncio
async def test_ingest_uses_title_as_topic_without_content(ctx):
    ctx.project = ctx.project.model_copy(update={"prompt_text": None})

    result = await ingest_inputs(ctx)

    assert result.data["merged_input_text"].endswith("## Topic\nCreate a video about: How Volcanoes Work")


@pytest.mark.asyncio
async def test_ingest_fails_with_nothing_to_work_from(ctx):
    ctx.project = ctx.project.model_copy(update={"prompt_text": "  ", "title": " "})

    result = await ingest_inputs(ctx)

    assert not result.success
    assert result.error.code == "ERR_INPUT_FETCH"


# generate_script

RAW_SCRIPT = {
    "title": "Inside a Volcano",
    "sections": [
        {
            "id": "s1",
            "order": 0,
            "headline": "Magma",
            "narrationText": " ".join(["word"] * 150),
            "visualKeywords": ["magma", "chamber"],
            "paceHint": "slow",
        },
        {"headline": "Eruption", "narration_text": "Boom goes the mountain.", "pace_hint": "frantic"},
    ],
}


def test_parse_script_accepts_both_key_styles():
    script = parse_script(RAW_SCRIPT, "Fallback")

    assert script.title == "Inside a Volcano"
    first, second = script.sections
    assert first.visual_keywords == ["magma", "chamber"]
    assert first.pace_hint == "slow"
    assert first.estimated_duration_ms == 60_000
    assert second.id == "section_001"
    assert second.order == 1
    assert second.pace_hint == "normal"
    assert script.total_word_count == 154
    assert script.estimated_duration_ms == estimate_duration_ms(154)


def test_parse_script_uses_fallback_title():
    assert parse_script({"sections": []}, "Fallback").title == "Fallback"


@pytest.mark.asyncio
async def test_generate_script_produces_script_and_outline(ctx, storage):
    add_artifact(ctx, "merged_input_text", "# Project: How Volcanoes Work")
    ctx.services.script_writer.write_script.return_value = RAW_SCRIPT

    result = await generate_script(ctx)

    assert result.success
    assert result.data["outline"] == ["Magma", "Eruption"]
    assert isinstance(result.data["script"], Script)
    ctx.services.script_writer.write_script.assert_awaited_once_with(
        "# Project: How Volcanoes Work", ctx.project, 150
    )
    uploaded = json.loads(storage.blobs[f"{ctx.base_path}/script/script.json"])
    assert uploaded["title"] == "Inside a Volcano"


@pytest.mark.asyncio
async def test_generate_script_requires_merged_input(ctx):
    result = await generate_script(ctx)

    assert not result.success
    assert result.error.code == "ERR_SCRIPT_GEN"
    ctx.services.script_writer.write_script.assert_not_awaited()


@pytest.mark.asyncio
async def test_generate_script_rejects_empty_script(ctx):
    add_artifact(ctx, "merged_input_text", "text")
    ctx.services.script_writer.write_script.return_value = {"title": "x", "sections": [{"headline": "h"}]}

    result = await generate_script(ctx)

    assert not result.success
    assert "no narrated sections" in result.error.message


@pytest.mark.asyncio
async def test_generate_script_converts_provider_errors(ctx):
    add_artifact(ctx, "merged_input_text", "text")
    ctx.services.script_writer.write_script.side_effect = RuntimeError("rate limited")

    result = await generate_script(ctx)

    assert not result.success
    assert result.error.code == "ERR_SCRIPT_GEN"
    assert result.error.message == "rate limited"


# generate_voice

def _script(*narrations):
    return Script(
        title="Volcanoes",
        sections=[
            ScriptSection(id=f"section_{i:03d}", order=i, headline=f"H{i}", narration_text=text)
            for i, text in enumerate(narrations)
        ],
    )


@pytest.mark.parametrize("voice,expected", [("Nova", "nova"), ("onyx", "onyx"), ("cloned-voice-7", None), (None, None)])
def test_select_voice(project, voice, expected):
    assert select_voice(project.model_copy(update={"voice_profile_id": voice})) == expected


@pytest.mark.asyncio
async def test_generate_voice_concatenates_sections(ctx, storage):
    add_artifact(ctx, "script", _script("First part.", "   ", "Second part."))
    ctx.services.speech.synthesize.side_effect = [b"clip-0", b"clip-1"]
    ctx.services.media.concat_audio.return_value = b"joined"
    ctx.services.media.probe_duration_ms.return_value = 61_000

    result = await generate_voice(ctx)

    assert result.success
    assert result.data == {
        "narration_path": f"{ctx.base_path}/audio/narration.mp3",
        "narration_duration_ms": 61_000,
    }
    assert ctx.services.speech.synthesize.await_count == 2
    ctx.services.media.concat_audio.assert_awaited_once_with([b"clip-0", b"clip-1"])
    assert storage.blobs[f"{ctx.base_path}/audio/section_001.mp3"] == b"clip-1"


@pytest.mark.asyncio
async def test_generate_voice_rejects_zero_duration(ctx):
    add_artifact(ctx, "script", _script("Only part."))
    ctx.services.speech.synthesize.return_value = b"clip"
    ctx.services.media.concat_audio.return_value = b"joined"
    ctx.services.media.probe_duration_ms.return_value = 0

    result = await generate_voice(ctx)

    assert not result.success
    assert result.error.code == "ERR_TTS"


@pytest.mark.asyncio
async def test_generate_voice_requires_script(ctx):
    result = await generate_voice(ctx)

    assert not result.success
    ctx.services.speech.synthesize.assert_not_awaited()


# run_alignment

def test_caption_time_formats():
    assert format_srt_time(0) == "00:00:00,000"
    assert format_srt_time(3661.5) == "01:01:01,500"
    assert format_vtt_time(62.345) == "00:01:02.345"


def test_generate_srt():
    srt = generate_srt([
        WhisperSegment(id=0, start=0.0, end=2.5, text="Hello there."),
        WhisperSegment(id=1, start=2.5, end=4.0, text="Magma rises."),
    ])

    assert srt == (
        "1\n00:00:00,000 --> 00:00:02,500\nHello there.\n"
        "\n"
        "2\n00:00:02,500 --> 00:00:04,000\nMagma rises.\n"
    )


@pytest.mark.asyncio
async def test_run_alignment_uploads_captions(ctx, storage):
    storage.blobs["narration.mp3"] = b"audio"
    add_artifact(ctx, "narration_path", "narration.mp3")
    segments = [WhisperSegment(id=0, start=0.0, end=1.2, text="Hot.")]
    words = [WhisperWord(word="Hot", start=0.0, end=1.2)]
    ctx.services.transcriber.transcribe.return_value = Transcription(segments=segments, words=words)

    result = await run_alignment(ctx)

    assert result.success
    assert result.data["whisper_segments"] == segments
    assert result.data["whisper_words"] == words
    assert result.data["captions_srt_path"] == f"{ctx.base_path}/alignment/captions.srt"
    assert storage.blobs[f"{ctx.base_path}/alignment/captions.vtt"].startswith(b"WEBVTT\n\n1\n")


@pytest.mark.asyncio
async def test_run_alignment_fails_without_segments(ctx, storage):
    storage.blobs["narration.mp3"] = b"audio"
    add_artifact(ctx, "narration_path", "narration.mp3")
    ctx.services.transcriber.transcribe.return_value = Transcription()

    result = await run_alignment(ctx)

    assert not result.success
    assert result.error.code == "ERR_ALIGNMENT"
