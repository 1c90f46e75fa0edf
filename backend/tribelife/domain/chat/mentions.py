"""@mention extraction."""

from __future__ import annotations

import re
from typing import List

# '@' not glued to a preceding word character (so e-mail addresses are
# ignored), then 3-30 word characters with nothing word-like after them.
_MENTION_RE = re.compile(r"(?<![\w@])@(\w{3,30})(?!\w)", re.ASCII)


def extract_mentions(content: str) -> List[str]:
	"""Return distinct lowercase handles in first-seen order."""
	seen: List[str] = []
	for match in _MENTION_RE.finditer(content):
		handle = match.group(1).lower()
		if handle not in seen:
			seen.append(handle)
	return seen
