"""
Pre-compiled heuristics used by the content-classifying stages.

These are substring/regex tests, not semantic scoring.
"""

import re

CITATION = re.compile(r"\[.*\]")
LONG_WORD = re.compile(r"\b\w{4,}\b")
SENTENCE_END = re.compile(r"[.!?]")

URL = re.compile(r"https?://[^\s]+", re.IGNORECASE)
EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
NUMBER = re.compile(r"\b\d+(\.\d+)?\b")
DATE = re.compile(
    r"\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b|\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b"
)
ACRONYM = re.compile(r"\b[A-Z]{2,}\b")
QUOTES = re.compile("[\"'“”‘’]")
CODE = re.compile(r"```[\s\S]*?```|`[^`]+`")
QUESTION = re.compile(
    r"\b(what|how|why|when|where|who|which|whose|whom)\b", re.IGNORECASE
)

# Personalization: proper names, titles and professions
NAME = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
TITLE = re.compile(
    r"\b(Dr|Prof|Mr|Mrs|Ms|PhD|MSc|BSc|CEO|CTO|CFO|VP|Director|Manager|Lead"
    r"|Senior|Junior)\b",
    re.IGNORECASE,
)
PROFESSION = re.compile(
    r"\b(Engineer|Developer|Scientist|Researcher|Analyst|Consultant|Architect)\b",
    re.IGNORECASE,
)


def contains_any(text: str, terms) -> bool:
    """True if ``text`` contains any of ``terms`` as a substring."""
    return any(term in text for term in terms)
