"""
Textual repairs for TeX that the translator cannot handle as submitted.

Each rule is a named regex rewrite applied in table order, followed by
the run-collapsing pass that bounds pathological nesting.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern


@dataclass(frozen=True)
class RewriteRule:
    name: str
    pattern: Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


LATEX_QUIRKS: tuple[RewriteRule, ...] = (
    # A transparent colour is how editors fake an empty line
    RewriteRule("transparent_color_empty", re.compile(r"\\textcolor\{transparent\}\{\}"), r"\\\\"),
    RewriteRule("transparent_color", re.compile(r"\\textcolor\{transparent\}"), r"\\\\"),
    RewriteRule("fraction_typo", re.compile(r"\\fra\{"), r"\\frac{"),
    RewriteRule("pi_r_superscript", re.compile(r"\\pir.", re.DOTALL), r"\\pi r^"),
    RewriteRule("times_r_superscript", re.compile(r"\\timesr.", re.DOTALL), r"\\times r^"),
    RewriteRule("times_s_superscript", re.compile(r"\\timess.", re.DOTALL), r"\\times s^"),
    RewriteRule("empty_superscript", re.compile(r"\^\{ \}"), ""),
    RewriteRule("dangling_superscript", re.compile(r"(?<!\\)\^\s*$"), "^?"),
    RewriteRule("bare_hash", re.compile(r"(?<!\\)((?:\\\\)*)#"), r"\1\\#"),
)

# (token run that is collapsed, replacement)
COLLAPSED_RUNS: tuple[tuple[str, str], ...] = (
    ("_{" * 5, "_{" * 2),
    ("}" * 5, "}" * 2),
)


def collapse_runs(text: str, run: str, replacement: str) -> str:
    """Replace ``run`` with ``replacement`` until no run is left."""
    while run in text:
        text = text.replace(run, replacement)
    return text


def repair_latex_quirks(text: str) -> str:
    if not isinstance(text, str):
        return text
    for rule in LATEX_QUIRKS:
        text = rule.apply(text)
    for run, replacement in COLLAPSED_RUNS:
        text = collapse_runs(text, run, replacement)
    return text
