"""
Tests for graph assembly and popularity scoring.

Covers scoring, high/low classification, edge de-duplication, pagination
metadata and dangling friend references.
"""

from unittest.mock import AsyncMock

import pytest

from social_graph_service.graph.assembler import (
    assemble_graph,
    build_edges,
    build_pagination,
    classify_node,
    count_shared_hobbies,
    edge_id,
    edge_key,
    popularity_score,
    resolve_missing_friends,
    score_user,
)
from social_graph_service.models.user import Position


def fixed_position():
    return Position(x=1.0, y=2.0)


@pytest.fixture
def trio(user_factory):
    """A knows B and C; B and C only know A."""
    a = user_factory("a", hobbies=["coding", "music"], friends=["b", "c"], created_at=1.0)
    b = user_factory("b", hobbies=["coding", "sports"], friends=["a"], created_at=2.0)
    c = user_factory("c", hobbies=["music", "art"], friends=["a"], created_at=3.0)
    return a, b, c


class TestScoring:
    def test_shared_hobbies_counts_distinct_overlap(self, user_factory):
        u = user_factory("u", hobbies=["coding", "coding", "music"])
        f = user_factory("f", hobbies=["coding", "art"])
        assert count_shared_hobbies(u, f) == 1

    def test_popularity_formula(self):
        assert popularity_score(2, 2) == 3.0
        assert popularity_score(0, 0) == 0.0

    def test_worked_example_scores_three(self, trio):
        a, b, c = trio
        lookup = {u.id: u for u in trio}
        assert score_user(a, lookup, include_connections=True) == 3.0
        assert score_user(b, lookup, include_connections=True) == 1.5

    def test_without_connections_score_is_friend_count(self, trio):
        a, _, _ = trio
        assert score_user(a, {"a": a}, include_connections=False) == 2.0

    def test_classification_threshold_is_strict(self):
        assert classify_node(5.0) == "low"
        assert classify_node(5.5) == "high"
        assert classify_node(0.0) == "low"

    def test_custom_threshold(self):
        assert classify_node(2.0, threshold=1.0) == "high"


class TestEdges:
    def test_edge_key_is_direction_independent(self):
        assert edge_key("x", "y") == edge_key("y", "x") == "x-y"
        assert edge_id("y", "x") == "e-x-y"

    def test_one_edge_per_pair(self, user_factory):
        users = [
            user_factory("a", friends=["b", "c"]),
            user_factory("b", friends=["a", "c"]),
            user_factory("c", friends=["a", "b"]),
        ]
        lookup = {u.id: u for u in users}
        edges = build_edges(users, lookup)

        assert len(edges) == 3
        assert {e.id for e in edges} == {"e-a-b", "e-a-c", "e-b-c"}

    def test_edge_source_is_the_scanning_user(self, user_factory):
        users = [user_factory("b", friends=["a"]), user_factory("a", friends=["b"])]
        edges = build_edges(users, {u.id: u for u in users})
        assert len(edges) == 1
        assert (edges[0].source, edges[0].target) == ("b", "a")
        assert edges[0].id == "e-a-b"
        assert edges[0].id == edge_id(edges[0].source, edges[0].target)

    def test_dangling_friend_emits_no_edge(self, user_factory):
        a = user_factory("a", friends=["ghost"])
        assert build_edges([a], {"a": a}) == []


class TestPagination:
    def test_three_pages_of_fifty(self):
        pages = [build_pagination(p, 50, 150, 50) for p in (1, 2, 3)]
        assert [p.total_pages for p in pages] == [3, 3, 3]
        assert [p.has_more for p in pages] == [True, True, False]

    def test_empty_store(self):
        p = build_pagination(1, 100, 0, 0)
        assert p.total_pages == 0
        assert p.has_more is False

    def test_partial_last_page(self):
        p = build_pagination(2, 100, 150, 50)
        assert p.total_pages == 2
        assert p.has_more is False

    def test_wire_format_is_camel_case(self):
        dumped = build_pagination(1, 10, 25, 10).model_dump(by_alias=True)
        assert dumped == {"page": 1, "limit": 10, "total": 25, "totalPages": 3, "hasMore": True}


class TestResolveMissingFriends:
    @pytest.mark.asyncio
    async def test_fetches_off_page_friends_in_one_batch(self, trio):
        a, b, c = trio
        resolve = AsyncMock(return_value=[b, c])
        lookup = {"a": a}

        merged = await resolve_missing_friends([a], lookup, resolve)

        assert merged == 2
        resolve.assert_awaited_once_with(["b", "c"])
        assert set(lookup) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_nothing_missing_skips_resolve(self, trio):
        resolve = AsyncMock()
        lookup = {u.id: u for u in trio}
        assert await resolve_missing_friends(list(trio), lookup, resolve) == 0
        resolve.assert_not_awaited()


class TestAssembleGraph:
    @pytest.mark.asyncio
    async def test_full_page(self, trio):
        graph = await assemble_graph(list(trio), total=3, page=1, limit=10, position_provider=fixed_position)

        nodes = {n.id: n for n in graph.nodes}
        assert [n.id for n in graph.nodes] == ["a", "b", "c"]
        assert nodes["a"].data.popularity_score == 3.0
        assert nodes["a"].type == "low"
        assert nodes["a"].data.label == "a"
        assert len(graph.edges) == 2
        assert graph.pagination.has_more is False

    @pytest.mark.asyncio
    async def test_off_page_friend_is_resolved_but_not_a_node(self, trio):
        a, b, c = trio
        resolve = AsyncMock(return_value=[b, c])

        graph = await assemble_graph([a], total=3, page=1, limit=1, resolve=resolve, position_provider=fixed_position)

        assert [n.id for n in graph.nodes] == ["a"]
        assert graph.nodes[0].data.popularity_score == 3.0
        assert {e.id for e in graph.edges} == {"e-a-b", "e-a-c"}
        assert graph.pagination.has_more is True

    @pytest.mark.asyncio
    async def test_without_connections_never_resolves(self, trio):
        a, _, _ = trio
        resolve = AsyncMock()

        graph = await assemble_graph(
            [a], total=3, page=1, limit=1, include_connections=False, resolve=resolve, position_provider=fixed_position
        )

        resolve.assert_not_awaited()
        assert graph.edges == []
        assert graph.nodes[0].data.popularity_score == 2.0

    @pytest.mark.asyncio
    async def test_dangling_friend_counts_but_shares_nothing(self, user_factory):
        a = user_factory("a", hobbies=["chess"], friends=["ghost"])
        resolve = AsyncMock(return_value=[])

        graph = await assemble_graph([a], total=1, page=1, limit=10, resolve=resolve, position_provider=fixed_position)

        assert graph.nodes[0].data.popularity_score == 1.0
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_high_score_node(self, user_factory):
        hub = user_factory("hub", hobbies=["chess"], friends=["f1", "f2", "f3", "f4"])
        friends = [user_factory(f"f{i}", hobbies=["chess"], friends=["hub"]) for i in range(1, 5)]

        graph = await assemble_graph([hub, *friends], total=5, page=1, limit=10, position_provider=fixed_position)

        node = next(n for n in graph.nodes if n.id == "hub")
        assert node.data.popularity_score == 6.0
        assert node.type == "high"

    @pytest.mark.asyncio
    async def test_stored_position_wins_over_provider(self, user_factory):
        a = user_factory("a", position=Position(x=10.0, y=20.0))
        graph = await assemble_graph([a], total=1, page=1, limit=10, position_provider=fixed_position)
        assert graph.nodes[0].position == Position(x=10.0, y=20.0)

    @pytest.mark.asyncio
    async def test_node_wire_format(self, trio):
        graph = await assemble_graph(list(trio), total=3, page=1, limit=10, position_provider=fixed_position)
        node = graph.model_dump(by_alias=True)["nodes"][0]
        assert node["data"]["popularityScore"] == 3.0
        assert node["position"] == {"x": 1.0, "y": 2.0}
