"""Column mapping auto-detection and mapping suggestions for task imports."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from fuzzywuzzy import fuzz

from taskimport.imports.mapping import (
    FieldMapping,
    IdentityAction,
    IdentityMapping,
    TargetField,
    ValueFieldType,
    ValueMapping,
    is_valid_email,
    normalize_identity,
)


# Header variations per task field
FIELD_MAPPINGS = {
    TargetField.NAME: {
        "variations": [
            "name",
            "title",
            "summary",
            "task",
            "task name",
            "task_name",
            "subject",
        ],
        "required": True,
    },
    TargetField.DESCRIPTION: {
        "variations": ["description", "desc", "details", "notes", "body"],
        "required": False,
    },
    TargetField.ASSIGNEE: {
        "variations": [
            "assignee",
            "assigned to",
            "assigned_to",
            "owner",
            "responsible",
            "assignee email",
        ],
        "required": False,
    },
    TargetField.DUE_DATE: {
        "variations": [
            "due_date",
            "due date",
            "due",
            "deadline",
            "end date",
            "end_date",
        ],
        "required": False,
    },
    TargetField.PRIORITY: {
        "variations": ["priority", "prio", "importance", "severity", "sev"],
        "required": False,
    },
    TargetField.STATUS: {
        "variations": ["status", "state", "stage"],
        "required": False,
    },
    TargetField.ID: {
        "variations": ["id", "task id", "task_id", "uuid", "key"],
        "required": False,
    },
}

# Keyword defaults, first match wins
PRIORITY_KEYWORDS = [
    ("Low", ["low", "minor", "trivial", "1"]),
    ("High", ["high", "critical", "urgent", "blocker", "3", "4", "5"]),
    ("Medium", ["medium", "normal", "major", "2"]),
]

STATUS_KEYWORDS = [
    ("To Do", ["todo", "open", "new", "backlog", "pending"]),
    ("In Progress", ["inprogress", "progress", "working", "active", "started"]),
    ("Done", ["done", "completed", "closed", "resolved", "finished"]),
]


def normalize_column_name(name: str) -> str:
    """Normalize column name for matching."""
    return name.lower().strip().replace("_", " ").replace("-", " ").replace(".", " ")


def calculate_similarity(source: str, target: str) -> int:
    """Calculate similarity score between source and target column names."""
    return fuzz.ratio(normalize_column_name(source), normalize_column_name(target))


def _best_target(
    source_col: str, used_targets: set[TargetField]
) -> tuple[Optional[TargetField], int]:
    best_score = 0
    best_target = None
    for target_field, config in FIELD_MAPPINGS.items():
        if target_field in used_targets:
            continue
        for variation in config["variations"]:
            score = calculate_similarity(source_col, variation)
            if score > best_score:
                best_score = score
                best_target = target_field
    return best_target, best_score


def auto_map_columns(source_columns: list[str]) -> list[FieldMapping]:
    """
    Auto-map source columns to task fields.

    Each task field is used at most once. High-confidence matches are taken
    first; remaining columns get a second, lower-threshold pass.

    Args:
        source_columns: CSV header names

    Returns:
        FieldMapping list in header order
    """
    mappings: dict[str, FieldMapping] = {}
    used_targets: set[TargetField] = set()

    for threshold in (70, 50):
        for source_col in source_columns:
            if source_col in mappings:
                continue
            best_target, best_score = _best_target(source_col, used_targets)
            if best_target and best_score >= threshold:
                mappings[source_col] = FieldMapping(
                    source_column=source_col,
                    target_field=best_target,
                    required=FIELD_MAPPINGS[best_target]["required"],
                )
                used_targets.add(best_target)

    return [mappings[col] for col in source_columns if col in mappings]


def suggest_mappings(source_columns: list[str]) -> dict[str, dict[str, Any]]:
    """
    Suggest column mappings with confidence scores.

    Returns:
        Dictionary with the best match and top candidates for each column
    """
    suggestions: dict[str, dict[str, Any]] = {}

    for source_col in source_columns:
        candidates = []
        for target_field, config in FIELD_MAPPINGS.items():
            max_score = max(
                calculate_similarity(source_col, variation)
                for variation in config["variations"]
            )
            if max_score > 0:
                candidates.append(
                    {
                        "target_field": target_field.value,
                        "score": max_score,
                        "required": config["required"],
                    }
                )

        candidates.sort(key=lambda x: x["score"], reverse=True)
        suggestions[source_col] = {
            "best_match": candidates[0] if candidates else None,
            "all_candidates": candidates[:5],
        }

    return suggestions


def _keyword_default(value: str, keywords: list[tuple[str, list[str]]], default: str) -> str:
    lowered = value.lower().replace(" ", "")
    for target, words in keywords:
        if any(word in lowered for word in words):
            return target
    return default


def _distinct_values(
    rows: list[dict[str, str]], field_mappings: Iterable[FieldMapping], target: TargetField
) -> list[str]:
    columns = [
        m.source_column
        for m in field_mappings
        if m.mapped and m.target_field == target and not (m.fixed_value or "").strip()
    ]
    seen: dict[str, None] = {}
    for row in rows:
        for column in columns:
            value = (row.get(column) or "").strip()
            if value:
                seen.setdefault(value, None)
    return list(seen)


def suggest_value_mappings(
    rows: list[dict[str, str]],
    field_mappings: list[FieldMapping],
    default_priority: str = "Medium",
    default_status: str = "To Do",
) -> list[ValueMapping]:
    """Propose a value mapping for every distinct priority/status literal."""
    suggestions = [
        ValueMapping(
            source_value=value,
            target_value=_keyword_default(value, PRIORITY_KEYWORDS, default_priority),
            field_type=ValueFieldType.PRIORITY,
        )
        for value in _distinct_values(rows, field_mappings, TargetField.PRIORITY)
    ]
    suggestions.extend(
        ValueMapping(
            source_value=value,
            target_value=_keyword_default(value, STATUS_KEYWORDS, default_status),
            field_type=ValueFieldType.STATUS,
        )
        for value in _distinct_values(rows, field_mappings, TargetField.STATUS)
    )
    return suggestions


def suggest_identity_mappings(
    rows: list[dict[str, str]],
    field_mappings: list[FieldMapping],
    member_emails: Iterable[str],
) -> list[IdentityMapping]:
    """
    Propose an identity mapping for every distinct assignee.

    Known team emails are mapped, unknown emails are proposed for creation
    and anything else is skipped until the operator decides.
    """
    known = {normalize_identity(email) for email in member_emails}
    suggestions: list[IdentityMapping] = []
    seen: set[str] = set()

    for identity in _distinct_values(rows, field_mappings, TargetField.ASSIGNEE):
        key = normalize_identity(identity)
        if key in seen:
            continue
        seen.add(key)

        if key in known:
            suggestions.append(
                IdentityMapping(
                    source_identity=identity,
                    action=IdentityAction.MAP,
                    target_identity_email=key,
                )
            )
        elif is_valid_email(identity):
            suggestions.append(
                IdentityMapping(
                    source_identity=identity,
                    action=IdentityAction.CREATE,
                    target_identity_email=key,
                )
            )
        else:
            suggestions.append(
                IdentityMapping(source_identity=identity, action=IdentityAction.SKIP)
            )

    return suggestions
