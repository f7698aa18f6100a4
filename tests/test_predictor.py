# tests/test_predictor.py
"""
Tests for the generic predictor: ranking, parameter values and context boosts.
"""
from datetime import timedelta

import pytest

from shellcue.context.analyzer import ContextAnalyzer
from shellcue.exceptions import ConfigurationError
from shellcue.learning.graph import UsageGraph
from shellcue.learning.history import CommandHistory
from shellcue.prediction.models import SuggestionSource
from shellcue.prediction.predictor import GenericPredictor, apply_boost, describe_age

from tests.conftest import NOW


def _texts(suggestions):
    return [s.text for s in suggestions]


def test_requires_collaborators(history, graph, analyzer):
    with pytest.raises(ConfigurationError):
        GenericPredictor(None, graph, analyzer)
    with pytest.raises(ConfigurationError):
        GenericPredictor(history, None, analyzer)
    with pytest.raises(ConfigurationError):
        GenericPredictor(history, graph, None)


def test_unknown_verb_returns_nothing(predictor, graph):
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    assert predictor.get_suggestions("docker ", now=NOW) == []


@pytest.mark.parametrize("line", ["", "   ", None])
def test_empty_input_returns_nothing(predictor, graph, line):
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    assert predictor.get_suggestions(line, now=NOW) == []


def test_non_positive_max_results(predictor, graph):
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    assert predictor.get_suggestions("ls ", max_results=0, now=NOW) == []
    assert predictor.get_suggestions("ls ", max_results=-1, now=NOW) == []


def test_higher_count_ranks_first(predictor, graph):
    graph.record_usage("ls", ["-l"], timestamp=NOW)
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    graph.record_usage("ls", ["-a"], timestamp=NOW)

    suggestions = predictor.get_suggestions("ls ", now=NOW)
    assert _texts(suggestions) == ["-a", "-l"]
    assert suggestions[0].score == pytest.approx(1.0)
    assert suggestions[1].score == pytest.approx(0.6 * 0.5 + 0.4)


def test_more_recent_ranks_first_on_equal_counts(predictor, graph):
    graph.record_usage("ls", ["-a"], timestamp=NOW - timedelta(days=10))
    graph.record_usage("ls", ["-l"], timestamp=NOW)

    assert _texts(predictor.get_suggestions("ls ", now=NOW)) == ["-l", "-a"]


def test_ties_break_by_text(predictor, graph):
    graph.record_usage("ls", ["-b", "-a", "-c"], timestamp=NOW)
    assert _texts(predictor.get_suggestions("ls ", now=NOW)) == ["-a", "-b", "-c"]


@pytest.mark.parametrize("k,expected", [(1, 1), (2, 2), (3, 3), (10, 3)])
def test_max_results_truncates(predictor, graph, k, expected):
    graph.record_usage("ls", ["-a", "-l", "-h"], timestamp=NOW)
    assert len(predictor.get_suggestions("ls ", max_results=k, now=NOW)) == expected


def test_scores_stay_in_unit_interval(predictor, graph, learn):
    for _ in range(5):
        learn("git add .", NOW)
    learn("git commit -m wip", NOW - timedelta(days=90))
    for suggestion in predictor.get_suggestions("git ", now=NOW):
        assert 0.0 <= suggestion.score <= 1.0


def test_typed_tokens_are_excluded(predictor, graph):
    graph.record_usage("ls", ["-l", "-a"], timestamp=NOW)
    assert _texts(predictor.get_suggestions("ls -l ", now=NOW)) == ["-a"]


def test_last_word_filters_by_prefix(predictor, graph):
    graph.record_usage("ls", ["--all", "-a", "docs"], timestamp=NOW)
    assert _texts(predictor.get_suggestions("ls --a", now=NOW)) == ["--all"]
    assert _texts(predictor.get_suggestions("ls d", now=NOW)) == ["docs"]


def test_verb_only_lists_all_arguments(predictor, graph):
    graph.record_usage("ls", ["-a", "-l"], timestamp=NOW)
    assert sorted(_texts(predictor.get_suggestions("ls", now=NOW))) == ["-a", "-l"]


def test_learned_suggestion_fields(predictor, graph):
    graph.record_usage("ls", ["-l", "-a"], timestamp=NOW)
    graph.record_usage("ls", ["-l", "-a"], timestamp=NOW)
    graph.record_usage("ls", ["docs"], timestamp=NOW)

    by_text = {s.text: s for s in predictor.get_suggestions("ls ", now=NOW)}
    assert by_text["-l"].is_flag
    assert not by_text["docs"].is_flag
    assert by_text["-l"].source == SuggestionSource.LEARNED
    assert by_text["-l"].description == "used 2x, just now, often with -a"
    assert by_text["docs"].description == "used 1x, just now"


def test_longest_learned_path_is_used(predictor, graph, parser):
    graph.record_parsed_usage(parser.parse("git commit --amend"), timestamp=NOW)
    graph.record_parsed_usage(parser.parse("git push --force"), timestamp=NOW)

    assert _texts(predictor.get_suggestions("git commit ", now=NOW)) == ["--amend"]
    assert _texts(predictor.get_suggestions("git push ", now=NOW)) == ["--force"]


def test_parameter_value_mode_without_values(predictor, graph, parser):
    graph.record_parsed_usage(parser.parse("git commit --amend"), timestamp=NOW)
    assert predictor.get_suggestions("git commit -m ", now=NOW) == []


def test_parameter_value_mode(predictor, graph, parser):
    for message in ("wip", "wip", "fix tests"):
        graph.record_parsed_usage(parser.parse(f'git commit -m "{message}"'), timestamp=NOW)

    suggestions = predictor.get_suggestions("git commit -m ", now=NOW)
    assert _texts(suggestions) == ["wip", "fix tests"]
    assert all(s.source == SuggestionSource.PARAMETER_VALUE for s in suggestions)
    assert all(not s.is_flag for s in suggestions)
    assert suggestions[0].score == pytest.approx(1.0)
    assert suggestions[1].score == pytest.approx(0.5)


def test_parameter_value_prefix(predictor, graph, parser):
    for message in ("wip", "fix tests"):
        graph.record_parsed_usage(parser.parse(f'git commit -m "{message}"'), timestamp=NOW)
    assert _texts(predictor.get_suggestions("git commit -m fi", now=NOW)) == ["fix tests"]


def test_registered_flag_is_shared_with_predictor(registry, history, graph, analyzer, parser):
    predictor = GenericPredictor(history, graph, analyzer, registry=registry)
    graph.record_parsed_usage(parser.parse("deploy --env prod"), timestamp=NOW)
    assert _texts(predictor.get_suggestions("deploy --env ", now=NOW)) == ["prod"]

    parser.register_parameter_requiring_value("--env")
    graph.record_parsed_usage(parser.parse("deploy --env staging"), timestamp=NOW)
    [suggestion] = predictor.get_suggestions("deploy --env ", now=NOW)
    assert suggestion.text == "staging"
    assert suggestion.source == SuggestionSource.PARAMETER_VALUE


def test_scoped_value_flag_mode(predictor, graph, parser):
    for tag in ("app:1", "app:1", "app:2"):
        graph.record_parsed_usage(parser.parse(f"docker build -t {tag} ."), timestamp=NOW)

    suggestions = predictor.get_suggestions("docker build -t ", now=NOW)
    assert _texts(suggestions) == ["app:1", "app:2"]
    assert all(s.source == SuggestionSource.PARAMETER_VALUE for s in suggestions)


def test_unscoped_short_flag_keeps_argument_mode(predictor, graph, parser):
    graph.record_parsed_usage(parser.parse("rm -f notes.txt"), timestamp=NOW)

    suggestions = predictor.get_suggestions("rm -f ", now=NOW)
    assert _texts(suggestions) == ["notes.txt"]
    assert suggestions[0].source == SuggestionSource.LEARNED


def test_git_add_boosts_commit(predictor, graph, learn):
    """After 'git add .' a learned 'commit' scores above 0.5."""
    graph.record_usage("git", ["push"], timestamp=NOW - timedelta(days=20))
    graph.record_usage("git", ["push"], timestamp=NOW - timedelta(days=20))
    graph.record_usage("git", ["push"], timestamp=NOW - timedelta(days=20))
    graph.record_usage("git", ["commit"], timestamp=NOW - timedelta(days=60))
    learn("git add .", NOW)

    by_text = {s.text: s for s in predictor.get_suggestions("git", now=NOW)}
    assert by_text["commit"].score > 0.5
    assert by_text["commit"].source == SuggestionSource.LEARNED


def test_context_suggestions_fill_unlearned_subcommands(predictor, learn):
    learn("git add .", NOW)
    suggestions = predictor.get_suggestions("git ", now=NOW)

    [status] = [s for s in suggestions if s.text == "status"]
    assert status.source == SuggestionSource.CONTEXT
    assert status.score == pytest.approx(0.85)
    [commit] = [s for s in suggestions if s.text == "commit"]
    assert commit.source == SuggestionSource.CONTEXT


def test_context_suggestions_need_learned_verb(predictor, history):
    history.add("git", "git add .", ["add", "."], True, timestamp=NOW)
    assert predictor.get_suggestions("git ", now=NOW) == []


def test_context_suggestions_only_before_first_argument(predictor, learn):
    learn("git add .", NOW)
    texts = _texts(predictor.get_suggestions("git add ", now=NOW))
    assert "status" not in texts


def test_recent_argument_boost(predictor, graph, learn):
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    learn("ls -l", NOW)

    by_text = {s.text: s for s in predictor.get_suggestions("ls ", now=NOW)}
    base = 0.6 * (1 / 2) + 0.4
    assert by_text["-l"].score == pytest.approx(apply_boost(base, 0.15))


def test_context_never_removes_candidates(predictor, graph, learn):
    graph.record_usage("git", ["log", "blame", "bisect"], timestamp=NOW)
    learn("git add .", NOW)
    texts = _texts(predictor.get_suggestions("git ", max_results=50, now=NOW))
    for token in ("log", "blame", "bisect", "add", "."):
        assert token in texts


def test_next_command_suggestions(predictor, learn):
    learn("git add .", NOW)
    suggestions = predictor.get_next_command_suggestions(now=NOW)
    assert _texts(suggestions)[:2] == ["git commit", "git status"]
    assert suggestions[0].source == SuggestionSource.CONTEXT
    assert predictor.get_next_command_suggestions(max_results=0) == []


def test_next_command_suggestions_without_history(predictor):
    assert predictor.get_next_command_suggestions(now=NOW) == []


def test_statistics(predictor, learn):
    learn("git status", NOW)
    learn("git push", NOW, success=False)
    learn("ls -a", NOW)

    stats = predictor.get_statistics()
    assert stats.total_commands_tracked == 3
    assert stats.unique_commands_learned == 3  # git, git status, ls
    assert stats.total_arguments_learned == 2
    assert stats.success_rate == pytest.approx(2 / 3)
    assert stats.most_common_command == "git"


def test_predictor_does_not_mutate_graph(predictor, graph):
    graph.record_usage("ls", ["-a"], timestamp=NOW)
    before = graph.to_state().to_dict()
    predictor.get_suggestions("ls ", now=NOW)
    predictor.get_suggestions("ls -a ", now=NOW)
    assert graph.to_state().to_dict() == before


def test_default_registry_comes_from_analyzer(parser):
    history, graph = CommandHistory(), UsageGraph()
    predictor = GenericPredictor(history, graph, ContextAnalyzer(parser))
    assert predictor.registry is parser.registry


def test_apply_boost_and_age_helpers():
    assert apply_boost(0.4, 0.0) == pytest.approx(0.4)
    assert apply_boost(0.4, 0.5) == pytest.approx(0.7)
    assert apply_boost(0.9, 2.0) == 1.0
    assert describe_age(10) == "just now"
    assert describe_age(7200) == "2h ago"
    assert describe_age(3 * 86400) == "3d ago"
    assert describe_age(30 * 86400) is None
