"""Mock streaming model for offline testing."""

from __future__ import annotations

import asyncio
import re
from typing import Any, AsyncIterator

from modforge.models.base import BaseStreamingModel
from modforge.protocol import format_code_block, format_plan, format_success

_REQUEST_RE = re.compile(r'Their request is: "(.*)"\.\s*$', re.MULTILINE)


def split_fragments(text: str, size: int) -> list[str]:
    size = max(1, size)
    return [text[index : index + size] for index in range(0, len(text), size)]


def canned_response(prompt: str) -> str:
    """Build a well-formed marker response for a prompt."""
    module = "MockModule"
    match = _REQUEST_RE.search(prompt)
    request = match.group(1) if match else prompt
    summary = " ".join(request.split())[:80] or "mock module"
    plan = format_plan(
        [
            f"1. Review the request: {summary}",
            "2. Check PrestaShop 8 module documentation",
            f"3. Create {module}/{module}.php",
            f"4. Create {module}/config.xml",
        ]
    )
    php = format_code_block(
        f"{module}/{module}.php",
        "<?php\n"
        "if (!defined('_PS_VERSION_')) {\n"
        "    exit;\n"
        "}\n\n"
        f"class {module} extends Module\n"
        "{\n"
        "    public function __construct()\n"
        "    {\n"
        f"        $this->name = '{module.lower()}';\n"
        "        $this->version = '1.0.0';\n"
        "        parent::__construct();\n"
        "    }\n"
        "}",
    )
    config = format_code_block(
        f"{module}/config.xml",
        '<?xml version="1.0" encoding="UTF-8" ?>\n'
        "<module>\n"
        f"    <name>{module.lower()}</name>\n"
        f"    <displayName><![CDATA[{module}]]></displayName>\n"
        f"    <description><![CDATA[{summary}]]></description>\n"
        "</module>",
    )
    return "\n\n".join([plan, php, config, format_success("Module generation is complete.")])


class MockStreamingModel(BaseStreamingModel):
    """Deterministic mock model used when no API key is available."""

    def __init__(
        self,
        fragments: list[str] | None = None,
        fail_after: int | None = None,
        error: Exception | None = None,
        fragment_size: int = 7,
    ) -> None:
        self._fragments = fragments
        self.fail_after = fail_after
        self.error = error or ConnectionError("Mock transport failure")
        self.fragment_size = fragment_size
        self.requests: list[list[dict[str, Any]]] = []

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        self.requests.append(messages)
        if self._fragments is not None:
            fragments = list(self._fragments)
        else:
            last = messages[-1].get("content") if messages else ""
            fragments = split_fragments(canned_response(str(last or "")), self.fragment_size)
        for index, fragment in enumerate(fragments):
            if self.fail_after is not None and index >= self.fail_after:
                raise self.error
            await asyncio.sleep(0)
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(fragments):
            raise self.error
