"""
pid_allocator.py — Issue / reuse Personal IDs for rows that have none.

Policy (reuse-before-generate), per person-key (exact last+first):
  1) PID already handed out to this person-key earlier in the same run
  2) PID on file in the Directory for this name
  3) new random 9-char ID (A-Z0-9), rejected while it collides with a used ID

Used IDs are normalized (identity_keys.normalized_personal_id) and only ever
grow during a run; every generated ID is reserved before it is returned.
"""

from __future__ import annotations

import random
import string
from typing import Iterable, Optional

from identity_keys import normalized_name_key, normalized_personal_id

PID_LENGTH = 9
PID_ALPHABET = string.ascii_uppercase + string.digits


def reserve(used_ids: set[str], pid) -> None:
    n = normalized_personal_id(pid)
    if n:
        used_ids.add(n)


def generate_unique(used_ids: set[str], rng=None) -> str:
    rng = rng or random.SystemRandom()
    while True:
        pid = "".join(rng.choice(PID_ALPHABET) for _ in range(PID_LENGTH))
        n = normalized_personal_id(pid)
        if n not in used_ids:
            used_ids.add(n)
            return pid


class PidAllocator:
    """
    One allocator per run.

    directory_name_map: person_key -> Directory PID (exact names)
    directory_name_keys: normalized name key -> Directory PID (symmetric fallback)
    """

    def __init__(
        self,
        used_ids: Iterable[str] = (),
        directory_name_map: Optional[dict[str, str]] = None,
        directory_name_keys: Optional[dict[str, str]] = None,
        rng=None,
    ):
        self.used_ids: set[str] = set()
        for pid in used_ids:
            reserve(self.used_ids, pid)
        self.directory_name_map = dict(directory_name_map or {})
        self.directory_name_keys = dict(directory_name_keys or {})
        self.rng = rng or random.SystemRandom()
        self.assigned: dict[str, str] = {}
        self.generated = 0
        self.borrowed = 0
        self.reused = 0

    def reserve(self, pid) -> None:
        reserve(self.used_ids, pid)

    def resolve_or_create(self, person_key: str, name_key: Optional[str] = None) -> Optional[str]:
        if not person_key:
            return None

        pid = self.assigned.get(person_key)
        if pid:
            self.reused += 1
            return pid

        pid = self.directory_name_map.get(person_key)
        if not pid and name_key:
            pid = self.directory_name_keys.get(name_key)
        if pid:
            self.borrowed += 1
            self.reserve(pid)
        else:
            pid = generate_unique(self.used_ids, self.rng)
            self.generated += 1

        self.assigned[person_key] = pid
        return pid

    def counts(self) -> dict:
        return {
            "ids_generated": self.generated,
            "ids_borrowed_from_directory": self.borrowed,
            "ids_reused_in_run": self.reused,
        }


def resolve_or_create(
    person_key: str,
    directory_name_map: dict[str, str],
    used_ids: set[str],
    assigned: Optional[dict[str, str]] = None,
    rng=None,
) -> Optional[str]:
    """Function form of PidAllocator.resolve_or_create over caller-owned state."""
    if not person_key:
        return None
    assigned = assigned if assigned is not None else {}
    if person_key in assigned:
        return assigned[person_key]
    pid = directory_name_map.get(person_key)
    if pid:
        reserve(used_ids, pid)
    else:
        pid = generate_unique(used_ids, rng)
    assigned[person_key] = pid
    return pid


def assign_identifiers(rows, allocator: PidAllocator) -> list[tuple[object, str]]:
    """
    rows: SourceRow-like objects (personal_id, last_name, first_name, person_key).
    Returns [(row, pid)] for rows without a PID that could be resolved.
    Rows with no name at all are left alone.
    """
    out = []
    for r in rows:
        if normalized_personal_id(r.personal_id):
            continue
        pid = allocator.resolve_or_create(
            r.person_key, normalized_name_key(r.last_name, r.first_name)
        )
        if pid:
            out.append((r, pid))
    return out
