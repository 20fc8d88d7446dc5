# llminster: Parser for the in-content model directive (@usemodel:<alias>). One function, two modes: FIRST strips only the directive that selects the model, ALL strips every directive line (used before archiving a question in the transcript).

from enum import Enum
from typing import List, Tuple

DIRECTIVE_PREFIX = "@usemodel"


class DirectiveMode(str, Enum):
    first = "first"
    all = "all"


def is_directive_line(line: str) -> bool:
    """True for "@usemodel" alone or followed by ':'; "@usemodelling" and the like are plain text."""
    stripped = line.strip().lower()
    if not stripped.startswith(DIRECTIVE_PREFIX):
        return False
    rest = stripped[len(DIRECTIVE_PREFIX):].lstrip()
    return rest == "" or rest.startswith(":")


def _alias_from_line(line: str) -> str:
    """Text after the first ':' trimmed; '' when there is no colon."""
    parts = line.split(":", 1)
    return parts[1].strip() if len(parts) == 2 else ""


def parse_directive(text: str, default_alias: str, mode: DirectiveMode = DirectiveMode.first) -> Tuple[str, str]:
    """
    Extract the model alias and the remaining payload from raw file content.

    The first directive line found from the top selects the alias (a directive
    without a colon or with a blank alias keeps default_alias) and is removed.
    In ALL mode every later directive line is removed as well; in FIRST mode
    they stay as written. When a directive was removed the remaining text is
    left-trimmed; when none exists text is returned unchanged.

    Returns:
        (alias, remaining_text)
    """
    lines = text.split("\n")
    alias = default_alias
    kept: List[str] = []
    found = False

    for line in lines:
        if is_directive_line(line) and (not found or mode == DirectiveMode.all):
            if not found:
                alias = _alias_from_line(line) or default_alias
                found = True
            continue
        kept.append(line)

    if not found:
        return default_alias, text
    return alias, "\n".join(kept).lstrip()


def strip_directives(text: str) -> str:
    """Remove every directive line (ALL mode) and return the cleaned text."""
    return parse_directive(text, "", DirectiveMode.all)[1]
