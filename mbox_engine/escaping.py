"""Reversible ``>From`` quoting of body lines (mboxrd convention).

Decoding removes exactly one ``>`` from lines matching ``^>+From ``;
encoding adds exactly one ``>`` to lines matching ``^>*From ``.  Deeper
quoting levels survive, so ``>>From`` decodes to ``>From`` and not to
``From``.
"""

from __future__ import annotations

import re

_ESCAPED_RE = re.compile(r"^>(>*From )", re.MULTILINE)
_NEEDS_ESCAPE_RE = re.compile(r"^(>*From )", re.MULTILINE)


def unescape_from_lines(text: str) -> str:
    return _ESCAPED_RE.sub(r"\1", text)


def escape_from_lines(text: str) -> str:
    return _NEEDS_ESCAPE_RE.sub(r">\1", text)

