"""
Tests for visual planning, image generation, timeline, render and packaging.
"""

import asyncio
import io
import json
import zipfile
from uuid import uuid4

import pytest

from shared.models import Script, ScriptSection, Timeline, VisualPlan, VisualSlot, WhisperSegment
from modules.pipeline.context import add_artifact
from modules.pipeline.steps.build_timeline import build_timeline, build_timeline_model, ms_to_frames
from modules.pipeline.steps.generate_images import generate_images
from modules.pipeline.steps.package_assets import package_assets
from modules.pipeline.steps.plan_visuals import build_image_prompt, build_visual_plan, derive_seed, plan_visuals
from modules.pipeline.steps.render_video import render_video


def _segments(*ends):
    start = 0.0
    segments = []
    for idx, end in enumerate(ends):
        segments.append(WhisperSegment(id=idx, start=start, end=end, text=f"Sentence {idx}."))
        start = end
    return segments


def _script(*keywords):
    return Script(
        title="Volcanoes",
        sections=[
            ScriptSection(id=f"section_{i}", order=i, headline=f"H{i}", narration_text="text", visual_keywords=kw)
            for i, kw in enumerate(keywords)
        ],
    )


def _plan(*bounds):
    slots = [
        VisualSlot(id=f"slot_{i:03d}", start_ms=start, end_ms=end, text=f"Text {i}", prompt=f"prompt {i}", style_preset="anime", seed=i)
        for i, (start, end) in enumerate(bounds)
    ]
    return VisualPlan(slots=slots, total_images=len(slots), cadence_ms=7000)


# plan_visuals

def test_visual_plan_groups_segments_by_cadence():
    plan = build_visual_plan(_script(["lava"]), _segments(3.0, 7.5, 10.0, 15.0, 16.0), 7000, "photorealistic")

    assert [(s.start_ms, s.end_ms) for s in plan.slots] == [(0, 7500), (7500, 15000), (15000, 16000)]
    assert plan.slots[0].text == "Sentence 0. Sentence 1."
    assert plan.total_images == 3
    assert plan.cadence_ms == 7000


def test_visual_plan_moves_to_next_section_every_three_slots():
    plan = build_visual_plan(_script(["lava"], ["ash"]), _segments(*range(4, 32, 4)), 4000, "photorealistic")

    assert len(plan.slots) == 7
    assert "lava" in plan.slots[2].prompt
    assert "ash" in plan.slots[3].prompt
    # Wraps around to the first section
    assert "lava" in plan.slots[6].prompt


def test_image_prompt_uses_style_prefix():
    prompt = build_image_prompt("Magma rises!", ["magma", "red"], "anime")
    assert prompt == "anime style, manga, Japanese animation, magma, red, scene depicting: Magma rises"


def test_image_prompt_falls_back_to_default_style():
    assert build_image_prompt("x", [], "vaporwave").startswith("photorealistic, high quality")


def test_seeds_are_deterministic_per_job_and_slot():
    job_id = uuid4()
    assert derive_seed(job_id, "slot_000") == derive_seed(job_id, "slot_000")
    assert derive_seed(job_id, "slot_000") != derive_seed(job_id, "slot_001")
    assert 0 <= derive_seed(job_id, "slot_000") < 2 ** 31


@pytest.mark.asyncio
@pytest.mark.parametrize("density,cadence", [("low", 10_000), ("normal", 7_000), ("high", 4_000), (None, 8_000)])
async def test_plan_visuals_cadence_follows_density(ctx, density, cadence):
    ctx.project = ctx.project.model_copy(update={"image_density": density})
    add_artifact(ctx, "script", _script(["lava"]))
    add_artifact(ctx, "whisper_segments", _segments(20.0))

    result = await plan_visuals(ctx)

    assert result.success
    plan = result.data["visual_plan"]
    assert plan.cadence_ms == cadence
    assert plan.slots[0].seed == derive_seed(ctx.job_id, "slot_000")


@pytest.mark.asyncio
async def test_plan_visuals_requires_segments(ctx):
    add_artifact(ctx, "script", _script(["lava"]))

    result = await plan_visuals(ctx)

    assert not result.success
    assert result.error.code == "ERR_VISUAL_PLAN"


# generate_images

@pytest.mark.asyncio
async def test_generate_images_keeps_slot_order_and_bounds_concurrency(ctx, storage):
    add_artifact(ctx, "visual_plan", _plan(*[(i * 1000, (i + 1) * 1000) for i in range(7)]))
    in_flight = 0
    peak = 0

    async def generate(prompt, width, height, seed=None):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return prompt.encode("utf-8")

    ctx.services.images.generate.side_effect = generate

    result = await generate_images(ctx)

    assert result.success
    paths = result.data["image_paths"]
    assert paths == [f"{ctx.base_path}/images/slot_{i:03d}.png" for i in range(7)]
    assert storage.blobs[paths[4]] == b"prompt 4"
    assert peak <= 3
    ctx.services.images.generate.assert_any_await("prompt 0", 1920, 1080, seed=0)


@pytest.mark.asyncio
async def test_generate_images_fails_on_first_error(ctx):
    add_artifact(ctx, "visual_plan", _plan((0, 1000), (1000, 2000)))
    ctx.services.images.generate.side_effect = [b"ok", RuntimeError("NSFW filter")]

    result = await generate_images(ctx)

    assert not result.success
    assert result.error.code == "ERR_IMAGE_GEN"
    assert "NSFW" in result.error.message


# build_timeline

def test_ms_to_frames():
    assert ms_to_frames(15_000) == 450
    assert ms_to_frames(1_000, fps=24) == 24


def test_single_slot_timeline_covers_narration():
    timeline = build_timeline_model(_plan((0, 15_000)), ["img.png"], "narration.mp3", 15_000, "1080p")

    assert timeline.fps == 30
    assert (timeline.width, timeline.height) == (1920, 1080)
    assert timeline.duration_frames == 450
    segment = timeline.segments[0]
    assert (segment.start_frame, segment.end_frame) == (0, 450)
    assert segment.image.src == "img.png"
    assert timeline.tracks == [{"type": "audio", "src": "narration.mp3", "volume": 1}]


def test_timeline_stretches_last_segment_and_alternates_zoom():
    timeline = build_timeline_model(
        _plan((0, 5000), (5000, 9000)), ["a.png", "b.png"], "n.mp3", 12_000, "720p",
        segments=_segments(2.0, 12.0),
    )

    first, second = timeline.segments
    assert second.end_frame == 360
    assert (first.image.zoom_from, first.image.zoom_to) == (1.0, 1.1)
    assert (second.image.zoom_from, second.image.zoom_to) == (1.1, 1.0)
    assert (timeline.width, timeline.height) == (1280, 720)
    assert [(c.start_frame, c.end_frame) for c in timeline.captions] == [(0, 60), (60, 360)]


@pytest.mark.asyncio
async def test_build_timeline_uploads_json(ctx, storage):
    add_artifact(ctx, "visual_plan", _plan((0, 15_000)))
    add_artifact(ctx, "image_paths", ["img.png"])
    add_artifact(ctx, "narration_path", "narration.mp3")
    add_artifact(ctx, "narration_duration_ms", 15_000)

    result = await build_timeline(ctx)

    assert result.success
    assert result.data["timeline_path"] == f"{ctx.base_path}/timeline.json"
    stored = json.loads(storage.blobs[result.data["timeline_path"]])
    assert stored["duration_frames"] == 450
    assert stored["version"] == 1


@pytest.mark.asyncio
async def test_build_timeline_rejects_missing_images(ctx):
    add_artifact(ctx, "visual_plan", _plan((0, 1000), (1000, 2000)))
    add_artifact(ctx, "image_paths", ["only-one.png"])
    add_artifact(ctx, "narration_path", "narration.mp3")
    add_artifact(ctx, "narration_duration_ms", 2000)

    result = await build_timeline(ctx)

    assert not result.success
    assert result.error.code == "ERR_TIMELINE"
    assert "Expected 2 images, found 1" in result.error.message


# render_video / package_assets

@pytest.fixture
def rendered_ctx(ctx, storage):
    storage.blobs.update({
        "img/a.png": b"A",
        "img/b.png": b"B",
        "narration.mp3": b"voice",
        "captions.srt": b"1\n00:00:00,000 --> 00:00:01,000\nHi\n",
    })
    timeline = build_timeline_model(_plan((0, 1000), (1000, 2000)), ["img/a.png", "img/b.png"], "narration.mp3", 2000, "1080p")
    add_artifact(ctx, "timeline", timeline)
    add_artifact(ctx, "narration_path", "narration.mp3")
    add_artifact(ctx, "narration_duration_ms", 2000)
    add_artifact(ctx, "captions_srt_path", "captions.srt")
    add_artifact(ctx, "image_paths", ["img/a.png", "img/b.png"])
    return ctx


@pytest.mark.asyncio
async def test_render_video_uploads_mp4(rendered_ctx, storage):
    rendered_ctx.services.media.render_video.return_value = b"mp4"

    result = await render_video(rendered_ctx)

    assert result.success
    assert result.data == {"video_path": f"{rendered_ctx.output_path}/video.mp4"}
    timeline, images, narration, captions = rendered_ctx.services.media.render_video.await_args.args
    assert isinstance(timeline, Timeline)
    assert images == [b"A", b"B"]
    assert narration == b"voice"
    assert captions.startswith("1\n00:00:00,000")


@pytest.mark.asyncio
async def test_render_video_converts_render_errors(rendered_ctx):
    rendered_ctx.services.media.render_video.side_effect = RuntimeError("ffmpeg exited with 1")

    result = await render_video(rendered_ctx)

    assert not result.success
    assert result.error.code == "ERR_RENDER"


@pytest.mark.asyncio
async def test_package_assets_builds_zip_with_manifest(rendered_ctx, storage):
    storage.blobs["video.mp4"] = b"mp4"
    add_artifact(rendered_ctx, "video_path", "video.mp4")

    result = await package_assets(rendered_ctx)

    assert result.success
    zip_path = result.data["zip_path"]
    assert zip_path == f"{rendered_ctx.output_path}/assets.zip"
    with zipfile.ZipFile(io.BytesIO(storage.blobs[zip_path])) as archive:
        assert sorted(archive.namelist()) == [
            "captions.srt", "images/a.png", "images/b.png", "manifest.json", "narration.mp3", "video.mp4",
        ]
        manifest = json.loads(archive.read("manifest.json"))
    assert manifest["job_id"] == str(rendered_ctx.job_id)
    assert manifest["title"] == "How Volcanoes Work"
    assert manifest["duration_ms"] == 2000
    assert f"{rendered_ctx.output_path}/manifest.json" in storage.blobs


@pytest.mark.asyncio
async def test_package_assets_requires_video(rendered_ctx):
    result = await package_assets(rendered_ctx)

    assert not result.success
    assert result.error.code == "ERR_PACKAGING"
