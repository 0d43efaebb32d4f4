from __future__ import annotations
from pathlib import Path
import json

from tabular_store import (
    ARCHIVED_SHEET,
    ATTENDANCE_LOG_SHEET,
    CONFIG_SHEET,
    DIRECTORY_REF_CELL,
    DIRECTORY_SHEET,
    WorkbookStore,
    is_blank,
)

ROOT = Path(__file__).resolve().parent
DEFAULT_WORKBOOK = ROOT / "attendance.xlsx"

REQUIRED_TABLES = [ATTENDANCE_LOG_SHEET, ARCHIVED_SHEET]


class ConfigurationError(RuntimeError):
    """Run cannot start: missing Directory reference, table, or unreadable registry."""


def out_dir(workbook: Path) -> Path:
    return Path(workbook).resolve().parent / "out"


def qc_dir(workbook: Path) -> Path:
    return out_dir(workbook) / "qc"


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str, ensure_ascii=False), encoding="utf-8")
    return path


def write_jsonl(path: Path, rows) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for r in rows:
            f.write(json.dumps(r, ensure_ascii=False, default=str) + "\n")
    return path


def directory_reference(store) -> str:
    if not store.has_table(CONFIG_SHEET):
        raise ConfigurationError(f"Missing {CONFIG_SHEET!r} sheet (Directory reference lives in {CONFIG_SHEET}!B1)")
    ref = store.table(CONFIG_SHEET).cell(*DIRECTORY_REF_CELL)
    if is_blank(ref):
        raise ConfigurationError(f"{CONFIG_SHEET}!B1 is empty: set it to the Directory workbook path")
    return str(ref).strip()


def resolve_directory_path(store, workbook: Path) -> Path:
    p = Path(directory_reference(store)).expanduser()
    if not p.is_absolute():
        p = Path(workbook).resolve().parent / p
    return p


def open_directory_store(store, workbook: Path):
    p = resolve_directory_path(store, workbook)
    if p.resolve() == Path(workbook).resolve():
        d = store
    else:
        if not p.exists():
            raise ConfigurationError(f"Directory registry not found: {p}")
        try:
            d = WorkbookStore.open(p)
        except Exception as e:
            raise ConfigurationError(f"Cannot open Directory registry {p}: {e}") from e
    if not d.has_table(DIRECTORY_SHEET):
        raise ConfigurationError(f"Directory registry {p} has no {DIRECTORY_SHEET!r} sheet")
    return d


def check_required_tables(store) -> None:
    missing = [t for t in REQUIRED_TABLES if not store.has_table(t)]
    if missing:
        raise ConfigurationError(f"Attendance workbook missing required sheets: {missing}")
