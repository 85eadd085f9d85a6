"""Shared construction helpers for models."""

from __future__ import annotations

from modforge.config import Settings
from modforge.models.base import BaseStreamingModel
from modforge.models.mock import MockStreamingModel
from modforge.models.openai_compat import OpenAICompatStreamingModel


def build_model(settings: Settings, use_mock: bool = False) -> BaseStreamingModel:
    if use_mock or not settings.openai_api_key:
        return MockStreamingModel()
    return OpenAICompatStreamingModel(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
        extra_headers=settings.extra_headers(),
        max_attempts=settings.openai_max_attempts,
        force_chatcompletions_path=settings.openai_force_chatcompletions_path,
    )
