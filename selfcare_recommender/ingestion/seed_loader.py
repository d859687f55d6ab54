"""
Seed loader for the local collaborator tables: JSON → validated models → SQLite.

The partner directory and analysis store belong to other services. When the
engine runs standalone, their records are imported from JSON exports:

  ``config/seed/partners.json``  — array of ``Partner`` objects.
  ``config/seed/analyses.json``  — array of ``Analysis`` objects; ``results``
                                    may be an array, a mapping, or JSON text.

Validation rules
----------------
- The file must contain a JSON array.
- Every element must validate against its model; failures are collected with
  their index instead of stopping at the first one.
- Duplicate explicit ids inside one file are rejected.

Usage
-----
    partners, errors = load_partner_file(Path("config/seed/partners.json"))
    if not errors:
        insert_partners(conn, partners)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from selfcare_recommender.db.repositories.analysis_repo import AnalysisRepository
from selfcare_recommender.db.repositories.partner_repo import PartnerRepository
from selfcare_recommender.models.directory import Analysis, Partner

log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SeedFileError(ValueError):
    """Raised when a seed file cannot be read or is not a JSON array."""


def _read_array(path: Path) -> list[Any]:
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        raise SeedFileError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise SeedFileError(f"{path} must contain a JSON array.")
    return raw


def _validate_all(
    raw_items: list[Any],
    model: type[ModelT],
    id_field: str,
) -> tuple[list[ModelT], list[tuple[int, str]]]:
    validated: list[ModelT] = []
    errors: list[tuple[int, str]] = []
    seen_ids: set[Any] = set()

    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors.append((i, "not a JSON object"))
            continue
        try:
            item = model(**raw)
        except ValidationError as exc:
            errors.append((i, str(exc)))
            continue
        item_id = getattr(item, id_field)
        if item_id is not None:
            if item_id in seen_ids:
                errors.append((i, f"duplicate {id_field} {item_id}"))
                continue
            seen_ids.add(item_id)
        validated.append(item)

    return validated, errors


def load_partner_file(path: Path) -> tuple[list[Partner], list[tuple[int, str]]]:
    """Validate a partners JSON file.

    Returns:
        ``(partners, errors)`` where ``errors`` holds ``(index, message)`` pairs.

    Raises:
        SeedFileError: If the file is unreadable or not an array.
    """
    return _validate_all(_read_array(path), Partner, "partner_id")


def load_analysis_file(path: Path) -> tuple[list[Analysis], list[tuple[int, str]]]:
    """Validate an analyses JSON file. Same contract as ``load_partner_file``."""
    return _validate_all(_read_array(path), Analysis, "analysis_id")


def insert_partners(conn: sqlite3.Connection, partners: list[Partner]) -> int:
    repo = PartnerRepository(conn)
    for partner in partners:
        repo.insert(partner)
    log.info("Inserted %d partner(s)", len(partners))
    return len(partners)


def insert_analyses(conn: sqlite3.Connection, analyses: list[Analysis]) -> int:
    repo = AnalysisRepository(conn)
    for analysis in analyses:
        repo.insert(analysis)
    log.info("Inserted %d analysis record(s)", len(analyses))
    return len(analyses)
