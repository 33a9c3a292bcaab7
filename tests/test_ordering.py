"""Tests for table and row ordering."""

from __future__ import annotations

import pytest

from clubdb.db import ForeignKey
from clubdb.ordering import (
    TABLE_ORDER,
    DependencyCycleError,
    dependency_order,
    order_rows,
    self_references,
)


def fk(table, ref_table, column=None, ref_column="id"):
    return ForeignKey(table, column or f"{ref_table.rstrip('s')}_id", ref_table, ref_column)


class TestDependencyOrder:
    def test_builtin_order_is_kept_when_consistent(self):
        keys = [
            fk("teams", "organizations"),
            fk("players", "teams"),
            fk("contracts", "players"),
            fk("invoices", "players"),
            fk("payments", "invoices"),
            fk("calendar_sync", "calendar_events"),
        ]
        assert dependency_order(TABLE_ORDER, keys) == TABLE_ORDER

    def test_parent_moved_before_child(self):
        keys = [fk("organizations", "users", column="owner_id"), fk("teams", "organizations")]
        order = dependency_order(["organizations", "teams", "users"], keys)
        assert order == ["users", "organizations", "teams"]

    def test_self_reference_ignored(self):
        keys = [fk("players", "players", column="mentor_id")]
        assert dependency_order(["players"], keys) == ["players"]

    def test_edges_to_unlisted_tables_ignored(self):
        keys = [fk("teams", "sessions")]
        assert dependency_order(["organizations", "teams"], keys) == ["organizations", "teams"]

    def test_cycle_raises(self):
        keys = [fk("teams", "players"), fk("players", "teams")]
        with pytest.raises(DependencyCycleError, match="players"):
            dependency_order(["teams", "players"], keys)


class TestRowOrder:
    def test_self_references_for_table(self):
        keys = [fk("players", "players", column="mentor_id"), fk("players", "teams")]
        assert self_references("players", keys) == [("mentor_id", "id")]
        assert self_references("teams", keys) == []

    def test_parents_first(self):
        rows = [
            {"id": 1, "mentor_id": 3},
            {"id": 2, "mentor_id": None},
            {"id": 3, "mentor_id": 2},
        ]
        ordered = order_rows(rows, [("mentor_id", "id")])
        assert [r["id"] for r in ordered] == [2, 3, 1]

    def test_dangling_and_self_pointing_rows_are_ready(self):
        rows = [{"id": 1, "mentor_id": 99}, {"id": 2, "mentor_id": 2}]
        assert order_rows(rows, [("mentor_id", "id")]) == rows

    def test_cycle_keeps_source_order(self):
        rows = [
            {"id": 1, "mentor_id": 2},
            {"id": 2, "mentor_id": 1},
            {"id": 3, "mentor_id": None},
        ]
        ordered = order_rows(rows, [("mentor_id", "id")])
        assert [r["id"] for r in ordered] == [3, 1, 2]

    def test_no_references_returns_rows_unchanged(self):
        rows = [{"id": 2}, {"id": 1}]
        assert order_rows(rows, []) is rows
