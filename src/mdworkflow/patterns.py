"""Match artifact filenames back to the templates that produced them.

A template's output pattern (for example ``resume_{{user.preferred_name}}.md``
or ``{% if prefix %}{{ prefix }}_{% endif %}notes.md``) is compiled once into a
regular expression. Literal text is escaped, every ``{{ ... }}`` placeholder
becomes a capturing wildcard, and ``{% if %}...{% endif %}`` blocks become
optional groups. Files written by the ``add`` action with an explicit prefix,
``<prefix>_<base>.md``, match as well.
"""

from __future__ import annotations

import re
from typing import Mapping

_TAG = re.compile(r"\{\{.*?\}\}|\{%-?\s*(?P<statement>.*?)\s*-?%\}", re.DOTALL)
_WILDCARD = "(.+)"


def strip_template_syntax(text: str) -> str:
    """Remove every placeholder and block tag from ``text``."""
    return _TAG.sub("", text)


def normalize_name(text: str) -> str:
    """Trim, turn whitespace runs into underscores and drop edge underscores."""
    collapsed = re.sub(r"_+", "_", re.sub(r"\s+", "_", text.strip()))
    return collapsed.strip("_")


def output_base_name(output: str) -> str:
    """Return the literal stem of an output pattern (``resume_{{x}}.md`` -> ``resume``)."""
    stem = strip_template_syntax(output)
    if stem.endswith(".md"):
        stem = stem[: -len(".md")]
    return normalize_name(stem)


def compile_output_pattern(output: str) -> re.Pattern[str]:
    """Compile an output filename pattern into an anchored regular expression.

    Args:
        output: Output filename pattern declared by a template.

    Returns:
        re.Pattern[str]: Expression matching filenames the template can produce.

    Raises:
        re.error: If block tags are unbalanced.
    """
    parts: list[str] = []
    position = 0
    for match in _TAG.finditer(output):
        parts.append(re.escape(output[position : match.start()]))
        statement = match.group("statement")
        if statement is None:
            parts.append(_WILDCARD)
        else:
            keyword = statement.split()[0] if statement.split() else ""
            if keyword == "if":
                parts.append("(?:")
            elif keyword in {"elif", "else"}:
                parts.append("|")
            elif keyword == "endif":
                parts.append(")?")
        position = match.end()
    parts.append(re.escape(output[position:]))

    alternatives = ["".join(parts)]
    base = output_base_name(output)
    if base:
        alternatives.append(f"{_WILDCARD}_{re.escape(base)}\\.md")
    return re.compile("^(?:" + "|".join(alternatives) + ")$")


def match_template(filename: str, patterns: Mapping[str, re.Pattern[str]]) -> str | None:
    """Return the first template whose pattern matches ``filename``.

    Templates whose literal base name prefixes the filename win over looser
    wildcard matches, so ``cover_letter_jane.md`` resolves to ``cover_letter``.
    """
    matches = [name for name, pattern in patterns.items() if pattern.match(filename)]
    if not matches:
        return None
    stem = filename[: -len(".md")] if filename.endswith(".md") else filename
    for name in sorted(matches, key=len, reverse=True):
        if stem == name or stem.startswith(f"{name}_"):
            return name
    return matches[0]


__all__ = [
    "compile_output_pattern",
    "match_template",
    "normalize_name",
    "output_base_name",
    "strip_template_syntax",
]
