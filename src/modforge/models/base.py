"""Base model interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class BaseStreamingModel(ABC):
    """Abstract streaming chat model interface."""

    @abstractmethod
    def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        """Send a chat request and yield response text as it arrives."""
        raise NotImplementedError
