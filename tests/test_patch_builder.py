"""Testes unitários para os documentos JSON Patch."""
from unittest.mock import MagicMock

import pytest

from tfs_cli.errors import AssignedToRequiredError, InvalidArgsError
from tfs_cli.utils.patch_builder import build_create_patch, build_update_patch, parse_assignment


def dump(patch):
    return [op.model_dump(mode="json") for op in patch]


def parent_url(wi_id):
    return f"https://tfs.example.com/c/_apis/wit/workItems/{wi_id}"


class TestParseAssignment:
    def test_trims_both_sides(self):
        assert parse_assignment("  System.State = Active ") == ("System.State", "Active")

    def test_splits_on_first_equals(self):
        assert parse_assignment("System.Description=a=b") == ("System.Description", "a=b")

    def test_empty_value_allowed(self):
        assert parse_assignment("System.Tags=") == ("System.Tags", "")

    @pytest.mark.parametrize("raw", ["System.State", "=value", "  =x"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidArgsError):
            parse_assignment(raw)


class TestUpdatePatch:
    def test_order_and_comment_last(self):
        patch = build_update_patch(["System.State=Active", "System.Tags=a; b"], comment="done")
        assert dump(patch) == [
            {"op": "add", "path": "/fields/System.State", "value": "Active"},
            {"op": "add", "path": "/fields/System.Tags", "value": "a; b"},
            {"op": "add", "path": "/fields/System.History", "value": "done"},
        ]

    def test_comment_only(self):
        assert dump(build_update_patch([], comment="hi")) == [
            {"op": "add", "path": "/fields/System.History", "value": "hi"}
        ]

    def test_malformed_set_fails(self):
        with pytest.raises(InvalidArgsError):
            build_update_patch(["System.State"])


class TestCreatePatch:
    def test_title_then_resolved_assignee(self):
        patch = build_create_patch("T", "", [], lambda: "Ana<ana@x.com>", parent_id=0)
        assert dump(patch) == [
            {"op": "add", "path": "/fields/System.Title", "value": "T"},
            {"op": "add", "path": "/fields/System.AssignedTo", "value": "Ana<ana@x.com>"},
        ]

    def test_full_order(self):
        resolve = MagicMock()
        patch = build_create_patch(
            "T",
            "ana@x.com",
            ["System.Tags=x", "Microsoft.VSTS.Common.Priority=2"],
            resolve,
            parent_id=10,
            parent_url=parent_url,
        )
        assert dump(patch) == [
            {"op": "add", "path": "/fields/System.Title", "value": "T"},
            {"op": "add", "path": "/fields/System.AssignedTo", "value": "ana@x.com"},
            {
                "op": "add",
                "path": "/relations/-",
                "value": {"rel": "System.LinkTypes.Hierarchy-Reverse", "url": parent_url(10)},
            },
            {"op": "add", "path": "/fields/System.Tags", "value": "x"},
            {"op": "add", "path": "/fields/Microsoft.VSTS.Common.Priority", "value": "2"},
        ]
        resolve.assert_not_called()

    def test_assignee_from_set_is_consumed(self):
        resolve = MagicMock()
        patch = build_create_patch("T", "", ["system.assignedto=bob@x.com", "System.Tags=x"], resolve)
        assert dump(patch) == [
            {"op": "add", "path": "/fields/System.Title", "value": "T"},
            {"op": "add", "path": "/fields/System.AssignedTo", "value": "bob@x.com"},
            {"op": "add", "path": "/fields/System.Tags", "value": "x"},
        ]
        resolve.assert_not_called()

    def test_explicit_assignee_wins_over_set(self):
        patch = build_create_patch("T", "ana@x.com", ["System.AssignedTo=bob@x.com"], MagicMock())
        assert [op.path for op in patch].count("/fields/System.AssignedTo") == 1
        assert patch[1].value == "ana@x.com"

    def test_structured_assignee(self):
        ref = {"id": "abc", "uniqueName": "CORP\\ana"}
        patch = build_create_patch("T", "", [], lambda: ref)
        assert patch[1].value == ref

    def test_custom_parent_relation(self):
        patch = build_create_patch(
            "T", "a", [], MagicMock(), parent_id=3, parent_url=parent_url, parent_rel="System.LinkTypes.Related"
        )
        assert patch[2].value == {"rel": "System.LinkTypes.Related", "url": parent_url(3)}

    def test_unresolvable_assignee(self):
        with pytest.raises(AssignedToRequiredError):
            build_create_patch("T", "", [], lambda: None)

    def test_resolver_error_propagates(self):
        def resolve():
            raise AssignedToRequiredError("assigned-to is required and could not be resolved from PAT profile")

        with pytest.raises(AssignedToRequiredError):
            build_create_patch("T", "", [], resolve)

    def test_title_required(self):
        with pytest.raises(InvalidArgsError):
            build_create_patch("  ", "a", [], MagicMock())

    def test_title_set_kept_in_order(self):
        patch = build_create_patch("T", "a", ["System.Title=Other", "System.Tags=x"], MagicMock())
        assert dump(patch) == [
            {"op": "add", "path": "/fields/System.Title", "value": "T"},
            {"op": "add", "path": "/fields/System.AssignedTo", "value": "a"},
            {"op": "add", "path": "/fields/System.Title", "value": "Other"},
            {"op": "add", "path": "/fields/System.Tags", "value": "x"},
        ]
