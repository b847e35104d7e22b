"""Output capping and structural validation of generated markdown.

Validation is advisory: it only ever produces warnings. Capping fails only
for an empty document, which is reported as ``EmptyOutputError``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

from src.generation.models import Audience
from src.generation.prompt_templates import METRICS_HEADING, has_gated_metrics_section, permitted_headings

MISSING_HEADINGS_WARNING = 'output is missing section headings (expected "##" sections)'
UNEXPECTED_METRICS_WARNING = "metrics section included but no metrics were detected in the notes"

_WHITESPACE = re.compile(r"\s+")


class EmptyOutputError(Exception):
    """Raised when the markdown is empty after normalization."""


@dataclass(frozen=True)
class CappedOutput:
    markdown: str
    warnings: List[str] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return bool(self.warnings)


def normalize_markdown(markdown: str) -> str:
    return markdown.replace("\r\n", "\n").strip()


def enforce_output_cap(markdown: str, max_chars: int) -> CappedOutput:
    """Normalize line endings, trim, and cut the document to ``max_chars``.

    A document of exactly ``max_chars`` is returned untouched. Longer ones are
    sliced at the cap with trailing whitespace removed, and a warning is
    attached.

    Raises:
        EmptyOutputError: If nothing is left after trimming.
    """
    normalized = normalize_markdown(markdown)
    if not normalized:
        raise EmptyOutputError("generated markdown is empty")

    if len(normalized) <= max_chars:
        return CappedOutput(markdown=normalized)

    return CappedOutput(
        markdown=normalized[:max_chars].rstrip(),
        warnings=[f"output truncated to {max_chars} characters"],
    )


def normalize_heading(name: str) -> str:
    """Strip emphasis markers, collapse whitespace, and drop a trailing colon."""
    cleaned = name.replace("*", "").replace("_", "").strip()
    cleaned = _WHITESPACE.sub(" ", cleaned)
    if cleaned.endswith(":"):
        cleaned = cleaned[:-1]
    return cleaned


def extract_h2_headings(markdown: str) -> List[str]:
    headings = []
    for line in markdown.split("\n"):
        stripped = line.strip()
        if stripped.startswith("## "):
            headings.append(normalize_heading(stripped[3:]))
    return headings


def validate_structure(markdown: str, audience: Audience, *, quantitative_signal: bool) -> List[str]:
    """Compare the document's ``##`` headings with the audience schema.

    Returns:
        Warnings, in document order. Empty when the structure conforms.
    """
    headings = extract_h2_headings(markdown)
    if not headings:
        return [MISSING_HEADINGS_WARNING]

    allowed = set(permitted_headings(audience, quantitative_signal=quantitative_signal))
    warnings = [f'unexpected section heading: "{heading}"' for heading in headings if heading not in allowed]

    if has_gated_metrics_section(audience) and not quantitative_signal and METRICS_HEADING in headings:
        warnings.append(UNEXPECTED_METRICS_WARNING)

    return warnings
