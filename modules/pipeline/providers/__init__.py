"""
Production providers for the pipeline services.
"""

from modules.pipeline.providers.media import FFmpegMediaToolkit, check_ffmpeg_available
from modules.pipeline.providers.openai_provider import OpenAIProvider
from modules.pipeline.providers.replicate_provider import ReplicateImageGenerator
from modules.pipeline.providers.storage import SupabaseArtifactStorage
from modules.pipeline.providers.web import HttpWebFetcher
from modules.pipeline.services import InputSource, PipelineServices
from shared.storage import StorageClient


def build_pipeline_services(storage_client: StorageClient, inputs: InputSource) -> PipelineServices:
    """
    Wire the production providers from settings.

    Args:
        storage_client: Supabase Storage client
        inputs: Source of project inputs (the job store)
    """
    openai_provider = OpenAIProvider()
    return PipelineServices(
        storage=SupabaseArtifactStorage(storage_client),
        inputs=inputs,
        script_writer=openai_provider,
        speech=openai_provider,
        transcriber=openai_provider,
        images=ReplicateImageGenerator(),
        media=FFmpegMediaToolkit(),
        web=HttpWebFetcher(),
    )


__all__ = [
    "FFmpegMediaToolkit",
    "HttpWebFetcher",
    "OpenAIProvider",
    "ReplicateImageGenerator",
    "SupabaseArtifactStorage",
    "build_pipeline_services",
    "check_ffmpeg_available",
]
