"""
Tests for directory merging and host paging.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from newsroom.models import ParticipantKind
from newsroom.schemas import DirectoryItem
from newsroom.services import directory


def _item(user_id, name, kind=ParticipantKind.EXPERT):
    return DirectoryItem(id=user_id, name=name, kind=kind)


def _result(users):
    result = MagicMock()
    result.scalars.return_value.unique.return_value = users
    return result


class TestMergeDirectoryResults:
    def test_earlier_group_wins_on_duplicate_ids(self):
        experts = [_item("u1", "Ada (expert)"), _item("u2", "Bo")]
        reporters = [_item("u1", "Ada (reporter)", ParticipantKind.REPORTER), _item("u3", "Cy")]

        merged = directory.merge_directory_results(experts, reporters)

        assert [item.id for item in merged] == ["u1", "u2", "u3"]
        assert merged[0].name == "Ada (expert)"
        assert merged[0].kind is ParticipantKind.EXPERT

    def test_empty_groups(self):
        assert directory.merge_directory_results([], []) == []


class TestClampTake:
    @pytest.mark.parametrize(
        "take, expected",
        [(None, 20), (0, 1), (-5, 1), (1, 1), (50, 50), (51, 50), (500, 50)],
    )
    def test_bounds(self, take, expected):
        assert directory.clamp_take(take) == expected


class TestSearchDirectory:
    @pytest.mark.asyncio
    async def test_all_mode_queries_experts_then_reporters(self, monkeypatch):
        calls = []

        async def fake_experts(db, org_id, query, take):
            calls.append("expert")
            return [_item("u1", "Ada")]

        async def fake_reporters(db, org_id, query, take):
            calls.append("reporter")
            return [_item("u1", "Ada", ParticipantKind.REPORTER), _item("u2", "Bo")]

        monkeypatch.setattr(directory, "search_experts", fake_experts)
        monkeypatch.setattr(directory, "search_reporters", fake_reporters)

        response = await directory.search_directory(MagicMock(), "org-1", "a")

        assert calls == ["expert", "reporter"]
        assert response.count == 2
        assert [item.id for item in response.items] == ["u1", "u2"]
        assert response.items[0].kind is ParticipantKind.EXPERT

    @pytest.mark.asyncio
    async def test_reporter_mode_labels_results(self):
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result([SimpleNamespace(id="u9", label="Rita")]))

        response = await directory.search_directory(
            db, "org-1", "ri", mode=directory.DirectoryMode.reporter
        )

        assert response.items == [_item("u9", "Rita", ParticipantKind.REPORTER)]
        db.execute.assert_awaited_once()


class TestSearchHosts:
    @pytest.mark.asyncio
    async def test_full_page_sets_next_cursor(self):
        users = [SimpleNamespace(id=f"h{i}", label=f"Host {i}") for i in range(2)]
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result(users))

        response = await directory.search_hosts(db, "org-1", take=2)

        assert [host.id for host in response.items] == ["h0", "h1"]
        assert response.count == 2
        assert response.next_cursor == "h1"

    @pytest.mark.asyncio
    async def test_short_page_has_no_cursor(self):
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result([SimpleNamespace(id="h0", label="Host 0")]))

        response = await directory.search_hosts(db, "org-1", take=5)

        assert response.next_cursor is None

    @pytest.mark.asyncio
    async def test_cursor_looks_up_sort_key_first(self):
        cursor_lookup = MagicMock()
        cursor_lookup.scalar_one_or_none.return_value = "Host 1"
        db = MagicMock()
        db.execute = AsyncMock(side_effect=[cursor_lookup, _result([])])

        response = await directory.search_hosts(db, "org-1", cursor="h1")

        assert db.execute.await_count == 2
        assert response.items == []
        assert response.next_cursor is None
