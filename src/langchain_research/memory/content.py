"""
Content extraction and derived-value caches.

Every stage classifies a message by its flattened plain text. Extraction and
lowercasing are memoized per message object in a ``ContentCache``; the
relevance and pattern caches are keyed by a short content prefix so results
are shared across pipeline runs.

Per-message entries go away with their LangChain message. Prefix-keyed
caches are never evicted implicitly; a long-running host that wants a bound
calls ``ContentCache.clear()`` itself.
"""

import json
import weakref
from typing import Any, Optional

from .messages import message_content

# Length of the content prefix used in relevance/pattern cache keys
CACHE_KEY_PREFIX_CHARS = 50


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _part_text(part: Any) -> str:
    """Flatten one content part to text."""
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        ptype = part.get("type")
        if ptype == "text":
            text = part.get("text")
            return "" if text is None else str(text)
        if ptype in ("tool-result", "tool_result"):
            payload = part.get("result")
            if payload is None:
                payload = part.get("content")
            return _to_json(part if payload is None else payload)
    return _to_json(part)


def flatten_content(content: Any) -> str:
    """Flatten string or list-of-parts content to a single string."""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return " ".join(_part_text(part) for part in content)
    return ""


class ContentCache:
    """
    Per-object memo of extracted and lowercased content, plus the
    prefix-keyed relevance and pattern caches.

    Entries are keyed by ``id(msg)``. Messages that support weak references
    (LangChain messages) are held weakly and their entries are dropped when
    the message is collected. Plain dicts cannot be weakly referenced and
    are held strongly so the id cannot be recycled while the entry lives.
    Messages are assumed immutable after creation.
    """

    def __init__(self):
        self._content: dict[int, tuple[Any, str]] = {}
        self._lowercase: dict[int, tuple[Any, str]] = {}
        self.relevance: dict[str, float] = {}
        self.patterns: dict[str, bool] = {}

    @staticmethod
    def _lookup(table: dict, msg: Any) -> Optional[str]:
        entry = table.get(id(msg))
        if entry is None:
            return None
        holder, text = entry
        target = holder() if isinstance(holder, weakref.ref) else holder
        return text if target is msg else None

    @staticmethod
    def _remember(table: dict, msg: Any, text: str):
        key = id(msg)

        def forget(ref, table=table, key=key):
            entry = table.get(key)
            if entry is not None and entry[0] is ref:
                del table[key]

        try:
            holder = weakref.ref(msg, forget)
        except TypeError:
            holder = msg
        table[key] = (holder, text)

    def content(self, msg: Any) -> str:
        text = self._lookup(self._content, msg)
        if text is not None:
            return text
        text = flatten_content(message_content(msg))
        self._remember(self._content, msg, text)
        return text

    def lowercase(self, msg: Any) -> str:
        text = self._lookup(self._lowercase, msg)
        if text is not None:
            return text
        text = self.content(msg).lower()
        self._remember(self._lowercase, msg, text)
        return text

    def stats(self) -> dict[str, int]:
        return {
            "content": len(self._content),
            "lowercase": len(self._lowercase),
            "relevance": len(self.relevance),
            "patterns": len(self.patterns),
        }

    def clear(self):
        self._content.clear()
        self._lowercase.clear()
        self.relevance.clear()
        self.patterns.clear()


# Process-wide cache shared by every processor that is not given its own
default_cache = ContentCache()


def extract_content(msg: Any, cache: Optional[ContentCache] = None) -> str:
    """Plain-text content of a message, memoized by object identity."""
    return (cache or default_cache).content(msg)


def lowercase_content(msg: Any, cache: Optional[ContentCache] = None) -> str:
    """Lowercased plain-text content of a message, memoized separately."""
    return (cache or default_cache).lowercase(msg)


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def compute_checksum(content: str) -> str:
    """
    Non-cryptographic rolling hash (h * 31 + c, wrapped to signed 32 bits),
    rendered as the hex of its absolute value. Used only for equality.

    Strings longer than 16 characters are walked in 4-character chunks.
    Only 32 bits of state are kept, so distinct strings can collide
    (e.g. "Aa" and "BB"); the deduplicator treats colliding messages as
    duplicates.
    """
    if not content:
        return "0"

    h = 0
    length = len(content)

    if length <= 16:
        for ch in content:
            h = _int32((h << 5) - h + ord(ch))
        return format(abs(h), "x")

    for i in range(0, length, 4):
        for ch in content[i:i + 4]:
            h = _int32((h << 5) - h + ord(ch))
    return format(abs(h), "x")
