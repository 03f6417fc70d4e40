"""
Minimal markdown subset produced by the formatting stage.

Only two constructs are recognised: ``- `` bullet lines (consecutive lines
form one list) and ``**bold**`` spans.  Everything else is plain paragraph
text.
"""
from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import List, Literal


@dataclass(frozen=True)
class Run:
    text: str
    bold: bool = False


@dataclass
class Block:
    """A paragraph (one item) or a bullet list (one item per bullet)."""

    kind: Literal["paragraph", "bullet_list"]
    items: List[List[Run]] = field(default_factory=list)


def parse_inline(text: str) -> List[Run]:
    """Split on ``**``; odd-numbered segments are bold."""
    runs: List[Run] = []
    for i, part in enumerate(text.split("**")):
        if part:
            runs.append(Run(part, bold=i % 2 == 1))
    return runs


def parse_markdown(text: str) -> List[Block]:
    blocks: List[Block] = []
    current_list: List[List[Run]] = []

    def flush_list() -> None:
        if current_list:
            blocks.append(Block("bullet_list", list(current_list)))
            current_list.clear()

    for line in (text or "").split("\n"):
        stripped = line.strip()
        if stripped.startswith("- "):
            current_list.append(parse_inline(stripped[2:]))
            continue
        flush_list()
        if stripped:
            blocks.append(Block("paragraph", [parse_inline(stripped)]))

    flush_list()
    return blocks


def _runs_html(runs: List[Run]) -> str:
    out = []
    for run in runs:
        escaped = html.escape(run.text)
        out.append(f"<strong>{escaped}</strong>" if run.bold else escaped)
    return "".join(out)


def render_html(blocks: List[Block]) -> str:
    parts = []
    for block in blocks:
        if block.kind == "bullet_list":
            items = "".join(f"<li>{_runs_html(item)}</li>" for item in block.items)
            parts.append(f'<ul style="list-style:disc;padding-left:2rem">{items}</ul>')
        else:
            parts.append(
                f'<p style="text-indent:2rem;text-align:justify">{_runs_html(block.items[0])}</p>'
            )
    return "\n".join(parts)
