"""Tests for core/validation.py — document checks."""

from mindmap_tool.core.models import Node
from mindmap_tool.core.validation import (
    IssueSeverity,
    ValidationIssue,
    validate_document,
    validation_summary,
)


def _messages(issues: list[ValidationIssue]) -> list[tuple[str, str | None]]:
    return [(i.severity.value, i.node_id) for i in issues]


def test_clean_document_has_no_issues(nested_doc: Node) -> None:
    issues = validate_document(nested_doc)
    assert issues == []
    assert validation_summary(issues) == {
        "total": 0, "errors": 0, "warnings": 0, "info": 0, "valid": True
    }


def test_root_only_document_is_reported_as_info() -> None:
    issues = validate_document(Node(id="root", text="Mind Map"))
    assert _messages(issues) == [("info", None)]
    assert validation_summary(issues)["valid"]


def test_duplicate_ids_are_errors() -> None:
    doc = Node(id="r", text="R", children=(Node(id="x", text="1"), Node(id="x", text="2")))
    issues = validate_document(doc)
    errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
    assert len(errors) == 1
    assert errors[0].node_id == "x"
    assert not validation_summary(issues)["valid"]


def test_default_and_empty_text_are_warnings() -> None:
    doc = Node(id="r", text="R", children=(
        Node(id="n1", text="New Node"),
        Node(id="n2", text="   "),
        Node(id="n3", text="Fine"),
    ))
    warnings = [i.node_id for i in validate_document(doc) if i.severity == IssueSeverity.WARNING]
    assert warnings == ["n1", "n2"]


def test_unknown_class_tags_need_known_classes(nested_doc: Node) -> None:
    assert validate_document(nested_doc) == []

    issues = validate_document(nested_doc, known_classes=["highlight"])
    assert _messages(issues) == [("warning", "a")]
    assert "important" in issues[0].message

    assert validate_document(nested_doc, known_classes=["important"]) == []


def test_blank_notes_are_info() -> None:
    doc = Node(id="r", text="R", children=(Node(id="n", text="N", notes=" "),))
    assert _messages(validate_document(doc)) == [("info", "n")]


def test_issue_to_dict() -> None:
    issue = ValidationIssue(IssueSeverity.WARNING, "Unknown class tag: x", node_id="n")
    assert issue.to_dict() == {"type": "warning", "message": "Unknown class tag: x", "node_id": "n"}
    assert "node_id" not in ValidationIssue(IssueSeverity.INFO, "m").to_dict()
