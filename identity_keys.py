"""
identity_keys.py — Person identity keys shared by every stage.

Keys:
  normalized_personal_id("ABC-123 ")      -> "abc123"
  normalized_name_key("Smith", "John D")  -> "johnsmith"   (symmetric)
  match_key("ABC123", "Smith", "John")    -> "abc123|johnsmith"
  person_key("Smith", "John")             -> "smith|john"  (exact, not symmetric)

Only the FIRST whitespace-delimited word of each name field is used for the
name key. Middle names / initials typed after the first word are ignored.
"""

from __future__ import annotations

import re
import unicodedata

import ftfy
import pandas as pd

KEY_SEP = "|"

_WS = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def repair_name(value) -> str:
    """Cell text -> clean string (mojibake repair + whitespace collapse, no guessing)."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = ftfy.fix_text(str(value))
    s = unicodedata.normalize("NFC", s)
    return _WS.sub(" ", s).strip()


def _first_word_letters(value) -> str:
    s = repair_name(value)
    if not s:
        return ""
    first = s.split(" ", 1)[0]
    return "".join(ch for ch in first if ch.isalpha()).lower()


def normalized_name_key(last, first) -> str | None:
    a = _first_word_letters(last)
    b = _first_word_letters(first)
    if not a and not b:
        return None
    return "".join(sorted((a, b)))


def normalized_personal_id(raw) -> str:
    s = repair_name(raw).lower()
    if not s:
        return ""
    return _NON_ALNUM.sub("", s)


def match_key(pid, last, first) -> str:
    return normalized_personal_id(pid) + KEY_SEP + (normalized_name_key(last, first) or "")


def is_unmatchable_key(key: str | None) -> bool:
    if not key:
        return True
    return key.replace(KEY_SEP, "") == ""


def person_key(last, first) -> str:
    """Exact last+first combination used for identifier reuse within one run."""
    a = repair_name(last).casefold()
    b = repair_name(first).casefold()
    if not a and not b:
        return ""
    return f"{a}{KEY_SEP}{b}"
