"""Tests for column auto-mapping and mapping suggestions."""

from __future__ import annotations

from taskimport.imports.mappers import (
    auto_map_columns,
    calculate_similarity,
    normalize_column_name,
    suggest_identity_mappings,
    suggest_mappings,
    suggest_value_mappings,
)
from taskimport.imports.mapping import (
    FieldMapping,
    IdentityAction,
    TargetField,
    ValueFieldType,
)


class TestColumnMapping:
    def test_normalize_column_name(self):
        assert normalize_column_name("Due_Date") == "due date"
        assert normalize_column_name(" task-name ") == "task name"

    def test_calculate_similarity_exact(self):
        assert calculate_similarity("Due Date", "due_date") == 100

    def test_auto_map_common_headers(self):
        mappings = auto_map_columns(["Title", "Description", "Assignee", "Due Date", "Priority", "Status"])

        by_column = {m.source_column: m.target_field for m in mappings}
        assert by_column == {
            "Title": TargetField.NAME,
            "Description": TargetField.DESCRIPTION,
            "Assignee": TargetField.ASSIGNEE,
            "Due Date": TargetField.DUE_DATE,
            "Priority": TargetField.PRIORITY,
            "Status": TargetField.STATUS,
        }
        name_mapping = next(m for m in mappings if m.target_field == TargetField.NAME)
        assert name_mapping.required

    def test_each_target_used_once(self):
        mappings = auto_map_columns(["Title", "Task Name"])

        targets = [m.target_field for m in mappings]
        assert len(targets) == len(set(targets))

    def test_unrelated_columns_not_mapped(self):
        assert auto_map_columns(["zzzzzz"]) == []

    def test_suggest_mappings_scores(self):
        suggestions = suggest_mappings(["Owner"])

        best = suggestions["Owner"]["best_match"]
        assert best["target_field"] == "assignee"
        assert best["score"] == 100
        assert len(suggestions["Owner"]["all_candidates"]) <= 5


FIELDS = [
    FieldMapping("Title", TargetField.NAME),
    FieldMapping("Sev", TargetField.PRIORITY),
    FieldMapping("State", TargetField.STATUS),
    FieldMapping("Owner", TargetField.ASSIGNEE),
]


class TestValueSuggestions:
    def test_keyword_defaults(self):
        rows = [
            {"Sev": "Critical", "State": "In progress"},
            {"Sev": "minor", "State": "Closed"},
            {"Sev": "Normal", "State": "Backlog"},
            {"Sev": "???", "State": "???"},
            {"Sev": "Critical", "State": ""},
        ]

        suggestions = suggest_value_mappings(rows, FIELDS)

        priority = {m.source_value: m.target_value for m in suggestions if m.field_type == ValueFieldType.PRIORITY}
        status = {m.source_value: m.target_value for m in suggestions if m.field_type == ValueFieldType.STATUS}
        assert priority == {"Critical": "High", "minor": "Low", "Normal": "Medium", "???": "Medium"}
        assert status == {"In progress": "In Progress", "Closed": "Done", "Backlog": "To Do", "???": "To Do"}

    def test_pinned_columns_need_no_value_mapping(self):
        fields = [FieldMapping("Sev", TargetField.PRIORITY, fixed_value="High")]

        assert suggest_value_mappings([{"Sev": "P1"}], fields) == []


class TestIdentitySuggestions:
    def test_actions(self):
        rows = [
            {"Owner": "A@x.com"},
            {"Owner": "a@x.com"},
            {"Owner": "new@x.com"},
            {"Owner": "Bob"},
        ]

        suggestions = suggest_identity_mappings(rows, FIELDS, ["a@x.com"])

        actions = {m.source_identity: (m.action, m.target_identity_email) for m in suggestions}
        assert actions == {
            "A@x.com": (IdentityAction.MAP, "a@x.com"),
            "new@x.com": (IdentityAction.CREATE, "new@x.com"),
            "Bob": (IdentityAction.SKIP, None),
        }
