"""
Inline suppression comments.

``// @smellhunter-ignore`` on the issue line or the line directly above hides
every issue on that line; ``// @smellhunter-ignore silent-failure, logic-in-routes``
hides only the listed analyzers.
"""

import re
from typing import FrozenSet, Optional, Sequence

ALL = frozenset({"*"})


def _pattern(keyword: str):
    return re.compile(
        rf"(?://|#|/\*|\{{\{{--|<!--)\s*@?{re.escape(keyword)}\b(?P<ids>[ \t]+[\w\-, \t]+)?")


def suppressed_ids(line: str, keyword: str) -> Optional[FrozenSet[str]]:
    """Analyzer ids suppressed by a comment on ``line`` (``ALL`` for a bare marker), else None."""
    match = _pattern(keyword).search(line)
    if match is None:
        return None
    ids = match.group("ids")
    if not ids:
        return ALL
    names = frozenset(p for p in re.split(r"[\s,]+", ids.strip()) if re.match(r"\w", p))
    return names or ALL


def is_suppressed(lines: Sequence[str], line: int, analyzer_id: str, keyword: str) -> bool:
    for number in (line, line - 1):
        if 1 <= number <= len(lines):
            ids = suppressed_ids(lines[number - 1], keyword)
            if ids is not None and (ids is ALL or analyzer_id in ids):
                return True
    return False

