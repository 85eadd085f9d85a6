"""Prompt templates for module generation."""

from __future__ import annotations

from typing import Iterable, Literal

GenerationMode = Literal["create", "modify"]

_ACTIONS = {"create": "create a new module", "modify": "modify an existing module"}

_FORMAT = """\
Format your response EXACTLY as follows, streaming the output incrementally. DO NOT add any other text or explanations outside of this structure.

[PLAN_START]
1. First step of the plan...
2. Second step of the plan...
3. ...
[PLAN_END]

[CODE_START:MyModuleName/MyModuleName.php]
<?php
// ... PHP code for the main module file
[CODE_END]

[CODE_START:MyModuleName/config.xml]
<?xml version="1.0" encoding="UTF-8" ?>
<module>
    <!-- ... config.xml content -->
</module>
[CODE_END]

[SUCCESS:Module generation is complete.]
"""


def build_prompt(description: str, mode: GenerationMode = "create") -> str:
    """Build the instruction prompt for a create or modify request."""
    if mode not in _ACTIONS:
        raise ValueError(f"Unsupported generation mode: {mode}")
    action = _ACTIONS[mode]
    return (
        "You are a world-class expert on PrestaShop 8.1/8.2 module development. "
        f"A user wants to {action}.\n"
        f'Their request is: "{description}".\n\n'
        "First, decide on a valid, PSR-4 compliant PrestaShop module name in CamelCase based on "
        "the user's request (e.g., if the request is \"display best sellers\", the name could be "
        "'DisplayBestSellers'). This name will be used for the module's main folder and PHP file.\n"
        "Second, create a step-by-step plan for how you will build this module. The plan should "
        "include research steps (checking documentation, GitHub, Stack Overflow) and development "
        "steps (file structure, coding).\n"
        "Third, generate the complete PHP code for the main module file. The filename and folder "
        "name MUST use the module name you decided on.\n"
        "Finally, generate the code for the `config.xml` file for the module, also placing it in "
        "the module's folder.\n\n"
        f"{_FORMAT}"
    )


def build_modify_request(description: str, existing_paths: Iterable[str], request: str) -> str:
    """Describe a modification of an existing module for ``build_prompt(..., "modify")``."""
    paths = ", ".join(existing_paths) or "none"
    return (
        f'Original module description: "{description}". '
        f"The module has these existing files: {paths}. "
        f'Modification request: "{request}"'
    )


def build_messages(prompt: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": prompt}]
