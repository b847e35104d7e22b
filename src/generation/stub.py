"""Deterministic stub document used while the provider is not configured.

The stub follows the same section schema as a live result, so it passes
structural validation, and it never touches the network.
"""

from __future__ import annotations

from typing import List

from src.common.pii import excerpt_text
from src.generation.models import Audience, GenerateRequest, Length, Tone
from src.generation.prompt_templates import sections_for
from src.generation.signals import detect_quantitative_content

STUB_EXCERPT_CHARS = 700
STUB_MODE_WARNING = "stub mode: live generation is disabled until the provider is configured"


def build_stub_markdown(request: GenerateRequest) -> str:
    """Build the placeholder update for ``request``.

    Output depends only on the request, so identical requests produce
    byte-identical documents.
    """
    settings = request.settings
    quantitative_signal = detect_quantitative_content(request.raw_input)

    lines: List[str] = [
        f"# Weekly update ({Audience(settings.audience).value} · "
        f"{Length(settings.length).value} · {Tone(settings.tone).value})",
    ]
    for section in sections_for(settings.audience, quantitative_signal=quantitative_signal):
        bullet = f"- [stub] {section.stub_hint}" if section.stub_hint else "- [stub]"
        lines.extend(["", f"## {section.heading}", bullet])

    lines.extend(["", "---", "### Notes excerpt", excerpt_text(request.raw_input, STUB_EXCERPT_CHARS)])
    return "\n".join(lines)
