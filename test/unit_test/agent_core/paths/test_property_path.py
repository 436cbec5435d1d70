from __future__ import annotations

import pytest

from flowmesh_ai.agent_core.errors import PathError
from flowmesh_ai.agent_core.paths import (
    PathSegment,
    add_path,
    build_path,
    contains_path,
    filter_paths_by_prefix,
    is_valid_path,
    leaf_property,
    parent_path,
    parse_path,
    path_steps,
    remove_path,
    root_property,
    update_paths_on_array_remove,
)


def test_parse_path_splits_keys_and_indices() -> None:
    assert parse_path("users[0].messages[1].text") == [
        PathSegment("users", (0,)),
        PathSegment("messages", (1,)),
        PathSegment("text"),
    ]


def test_parse_path_supports_chained_indices() -> None:
    assert parse_path("matrix[2][0]") == [PathSegment("matrix", (2, 0))]
    assert path_steps("matrix[2][0].value") == ["matrix", 2, 0, "value"]


@pytest.mark.parametrize(
    "path",
    ["", ".a", "a.", "a..b", "a.[0]", "a[b]", "a[-1]", "a[0", "[0]", "a b", "a[1000000]"],
)
def test_parse_path_rejects_malformed_paths(path: str) -> None:
    with pytest.raises(PathError):
        parse_path(path)
    assert is_valid_path(path) is False


@pytest.mark.parametrize("path", ["url", "items[5].name", "a.b.c", "my-key_1[999999]"])
def test_is_valid_path_accepts_well_formed_paths(path: str) -> None:
    assert is_valid_path(path) is True


def test_build_and_navigation_helpers() -> None:
    segments = parse_path("users[0].messages[1].text")
    assert build_path(segments) == "users[0].messages[1].text"
    assert parent_path("users[0].messages[1].text") == "users[0].messages[1]"
    assert parent_path("url") is None
    assert leaf_property("users[0].messages[1]") == "messages"
    assert root_property("users[0].messages[1].text") == "users"


def test_path_list_maintenance() -> None:
    paths = add_path(["url", "body"], "headers.auth")
    assert paths == ["body", "headers.auth", "url"]
    assert add_path(paths, "url") == paths
    assert contains_path(paths, "headers.auth")
    assert remove_path(paths, "body") == ["headers.auth", "url"]

    with pytest.raises(PathError):
        add_path(paths, "bad..path")


def test_filter_paths_by_prefix_matches_nested_paths_only() -> None:
    paths = ["items", "items[0].name", "items.count", "itemsExtra", "other"]
    assert filter_paths_by_prefix(paths, "items") == ["items", "items[0].name", "items.count"]


def test_update_paths_on_array_remove_drops_and_shifts() -> None:
    paths = ["rows[0].a", "rows[1].a", "rows[1].b", "rows[2].a", "rows[3]", "other[1].a"]

    updated = update_paths_on_array_remove(paths, "rows", 1)

    assert updated == ["rows[0].a", "rows[1].a", "rows[2]", "other[1].a"]
