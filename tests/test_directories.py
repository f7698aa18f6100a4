# tests/test_directories.py
"""
Tests for directory match scoring and smart jump suggestions.
"""
import os

import pytest

from shellcue.exceptions import ConfigurationError
from shellcue.prediction.directories import (
    DirectoryMatchEngine, calculate_match_score, distance_score, final_component,
)

from tests.conftest import NOW


@pytest.fixture
def tree(tmp_path):
    """root/{projects/{shellcue,other},docs,node_modules,app1,misc/app2}"""
    for name in ("projects/shellcue", "projects/other", "docs", "node_modules", "app1", "misc/app2"):
        (tmp_path / name).mkdir(parents=True)
    return tmp_path


@pytest.fixture
def engine(graph):
    return DirectoryMatchEngine(graph)


def _visit(graph, root, target, times=1):
    for _ in range(times):
        graph.record_usage("cd", [target], working_directory=str(root), timestamp=NOW)


@pytest.mark.parametrize("path", [
    "/home/me/projects",
    "/home/me/projects/",
    "C:\\work\\projects",
    "C:\\work\\projects\\",
    "projects",
])
def test_exact_final_component_scores_one(path):
    assert calculate_match_score(path, "projects") == 1.0


def test_unrelated_name_scores_zero():
    assert calculate_match_score("/home/me/docs", "proj") == 0.0


def test_substring_scores_between_zero_and_one():
    score = calculate_match_score("/home/me/projects", "proj")
    assert 0.0 < score < 1.0
    # Even with maximal frecency a partial match stays below an exact one
    assert calculate_match_score("/home/me/projects", "proj", frecency=1.0) < 1.0


def test_score_grows_with_overlap_prefix_and_frecency():
    assert calculate_match_score("/x/projects", "project") > calculate_match_score("/x/projects", "proj")
    assert calculate_match_score("/x/project-a", "project") > calculate_match_score("/x/a-project", "project")
    assert calculate_match_score("/x/projects", "proj", frecency=0.8) > calculate_match_score("/x/projects", "proj")


def test_case_sensitivity():
    assert calculate_match_score("/x/Projects", "proj") == 0.0
    assert calculate_match_score("/x/Projects", "proj", case_sensitive=False) > 0.0
    assert calculate_match_score("/x/Projects", "projects", case_sensitive=False) == 1.0


def test_final_component():
    assert final_component("/a/b/") == "b"
    assert final_component("C:\\a\\b") == "b"
    assert final_component("b") == "b"


@pytest.mark.parametrize("target,expected", [
    ("/srv/a/b", 1.0),
    ("/srv/a", 0.9),
    ("/srv/a/b/c", 0.75),
    ("/srv/a/b/c/d", 0.65),
    ("/srv/a/b/c/d/e/f", 0.5),
    ("/srv/a/c", 0.7),
    ("/srv/x/y", 0.5),
    ("/opt/x", 0.1),
])
def test_distance_score(target, expected):
    assert distance_score(target, "/srv/a/b") == pytest.approx(expected)


def test_distance_without_current_directory():
    assert distance_score("/srv/a", None) == 0.1


def test_learned_target_is_suggested(graph, engine, tree):
    _visit(graph, tree, "projects/shellcue", times=3)

    [suggestion] = engine.get_suggestions("shell", str(tree), now=NOW)
    assert suggestion.display_path == os.path.join(str(tree), "projects", "shellcue")
    assert suggestion.path == os.path.join("projects", "shellcue")
    assert suggestion.usage_count == 3
    assert suggestion.last_used == NOW
    assert suggestion.match_type == "prefix"


def test_child_directories_are_candidates(engine, tree):
    [suggestion] = engine.get_suggestions("doc", str(tree), now=NOW)
    assert suggestion.path == "docs"
    assert suggestion.usage_count == 0


def test_exact_match_wins(graph, engine, tree):
    _visit(graph, tree, "misc/app2", times=10)
    suggestions = engine.get_suggestions("app1", str(tree), now=NOW)
    assert suggestions[0].path == "app1"
    assert suggestions[0].score == 1.0
    assert suggestions[0].match_type == "exact"


def test_frecency_orders_partial_matches(graph, engine, tree):
    _visit(graph, tree, "app1", times=5)
    _visit(graph, tree, "misc/app2", times=1)

    suggestions = engine.get_suggestions("app", str(tree), now=NOW)
    assert [s.path for s in suggestions] == ["app1", os.path.join("misc", "app2")]
    assert suggestions[0].score > suggestions[1].score


def test_skips_special_current_and_missing_paths(graph, engine, tree):
    graph.record_usage("cd", ["-"], timestamp=NOW)
    graph.record_usage("cd", ["."], timestamp=NOW)
    _visit(graph, tree, "gone")
    _visit(graph, tree / "docs", "..")

    paths = [s.display_path for s in engine.get_suggestions("", str(tree), now=NOW)]
    assert str(tree) not in paths
    assert os.path.join(str(tree), "gone") not in paths
    assert "-" not in paths and "." not in paths


def test_blocklist_unless_named(engine, tree):
    assert engine.get_suggestions("node", str(tree), now=NOW) == []
    [suggestion] = engine.get_suggestions("node_modules", str(tree), now=NOW)
    assert suggestion.path == "node_modules"


def test_empty_query_ranks_by_frecency(graph, engine, tree):
    _visit(graph, tree, "docs", times=4)
    suggestions = engine.get_suggestions("", str(tree), now=NOW)
    learned = [s for s in suggestions if s.match_type != "shortcut"]
    assert learned[0].path == "docs"
    assert all(s.match_type == "frecency" for s in learned)
    assert "node_modules" not in [s.path for s in suggestions]
    # Only direct children are listed without a query
    assert os.path.join("projects", "shellcue") not in [s.path for s in suggestions]


def test_max_results(engine, tree):
    assert len(engine.get_suggestions("", str(tree), max_results=2, now=NOW)) == 2
    assert engine.get_suggestions("", str(tree), max_results=0, now=NOW) == []


def test_engine_score_includes_frecency(graph, engine, tree):
    target = str(tree / "projects" / "shellcue")
    plain = engine.calculate_match_score(target, "shell", str(tree))
    _visit(graph, tree, "projects/shellcue", times=3)
    assert engine.calculate_match_score(target, "shell", str(tree)) > plain
    assert engine.calculate_match_score(target, "shellcue") == 1.0


def test_navigation_verbs_are_merged(graph, engine, tree):
    graph.record_usage("cd", ["docs"], working_directory=str(tree), timestamp=NOW)
    graph.record_usage("pushd", ["docs"], working_directory=str(tree), timestamp=NOW)
    learned = engine.learned_directories()
    assert learned[os.path.join(str(tree), "docs")][0] == 2


@pytest.fixture
def home(tmp_path_factory, monkeypatch):
    """A fake home directory outside the tree."""
    path = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(path))
    monkeypatch.setenv("USERPROFILE", str(path))
    return path


def test_shortcuts_lead_an_empty_query(engine, tree, home):
    suggestions = engine.get_suggestions("", str(tree / "docs"), now=NOW)
    assert [(s.path, s.display_path) for s in suggestions[:2]] == [
        ("~", str(home)),
        ("..", str(tree)),
    ]
    assert all(s.score == 1.0 and s.match_type == "shortcut" for s in suggestions[:2])


@pytest.mark.parametrize("query,expected", [
    ("~", ["~"]),
    (".", [".."]),
    ("..", [".."]),
])
def test_shortcut_prefixes(engine, tree, home, query, expected):
    suggestions = engine.get_suggestions(query, str(tree / "docs"), now=NOW)
    assert [s.path for s in suggestions if s.match_type == "shortcut"] == expected


def test_no_shortcuts_for_absolute_queries_or_other_names(engine, tree, home):
    absolute = engine.get_suggestions(str(tree), str(tree / "docs"), now=NOW)
    assert all(s.match_type != "shortcut" for s in absolute)
    assert all(s.match_type != "shortcut" for s in engine.get_suggestions("doc", str(tree), now=NOW))


def test_home_shortcut_skipped_when_already_home(engine, home):
    paths = [s.path for s in engine.get_suggestions("", str(home), now=NOW)]
    assert "~" not in paths
    assert ".." in paths


def test_learned_parent_is_not_listed_twice(graph, engine, tree, home):
    _visit(graph, tree / "docs", "..", times=3)
    suggestions = engine.get_suggestions("", str(tree / "docs"), now=NOW)
    assert [s.display_path for s in suggestions].count(str(tree)) == 1


def test_nested_directories_are_found(engine, tree):
    (tree / "projects" / "shellcue" / "src").mkdir()
    [suggestion] = engine.get_suggestions("src", str(tree), now=NOW)
    assert suggestion.path == os.path.join("projects", "shellcue", "src")
    assert suggestion.usage_count == 0
    assert suggestion.match_type == "exact"


def test_search_depth_is_limited(graph, tree):
    (tree / "projects" / "shellcue" / "src" / "deep").mkdir(parents=True)
    assert DirectoryMatchEngine(graph).get_suggestions("deep", str(tree), now=NOW) == []

    [suggestion] = DirectoryMatchEngine(graph, max_depth=4).get_suggestions("deep", str(tree), now=NOW)
    assert suggestion.path == os.path.join("projects", "shellcue", "src", "deep")

    assert DirectoryMatchEngine(graph, max_depth=1).get_suggestions("shellcue", str(tree), now=NOW) == []


def test_blocked_directories_are_not_entered(engine, tree):
    (tree / "node_modules" / "pkg" / "lib").mkdir(parents=True)
    assert engine.get_suggestions("lib", str(tree), now=NOW) == []


def test_symlinked_directories_are_not_entered(engine, tree):
    try:
        os.symlink(str(tree), str(tree / "loop"), target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unavailable")

    paths = [s.path for s in engine.get_suggestions("doc", str(tree), now=NOW)]
    assert paths == ["docs"]
    assert [s.path for s in engine.get_suggestions("loop", str(tree), now=NOW)] == ["loop"]


def test_max_depth_must_be_positive(graph):
    with pytest.raises(ConfigurationError):
        DirectoryMatchEngine(graph, max_depth=0)
