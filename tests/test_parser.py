# tests/test_parser.py
"""
Tests for the command line parser and the shared flag registry.
"""
import pytest

from shellcue.learning.parser import (
    CommandParser, FlagRegistry, TokenKind, is_flag_syntax, split_command_line,
)


def test_empty_line_yields_empty_command(parser):
    """Blank input parses to an empty verb with no tokens."""
    for line in ("", "   ", None):
        parsed = parser.parse(line)
        assert parsed.is_empty
        assert parsed.verb == ""
        assert parsed.tokens == ()


def test_basic_tokenization(parser):
    """Flags, positionals and the verb are recognized."""
    parsed = parser.parse("ls -la /tmp")
    assert parsed.verb == "ls"
    assert [t.kind for t in parsed.tokens] == [TokenKind.FLAG, TokenKind.POSITIONAL]
    assert parsed.flags == ["-la"]
    assert parsed.positionals == ["/tmp"]


def test_value_flag_marks_following_token(parser):
    """The token after a registered value flag is a parameter value."""
    parsed = parser.parse('git commit -m "fix the bug"')
    assert parsed.args == ["commit", "-m", "fix the bug"]
    value = parsed.tokens[2]
    assert value.kind == TokenKind.PARAMETER_VALUE
    assert value.for_flag == "-m"
    assert parsed.parameter_values() == [("-m", "fix the bug")]


def test_flag_after_value_flag_stays_a_flag(parser):
    """A flag-like word after a value flag is not consumed as its value."""
    parsed = parser.parse("git commit -m --amend")
    assert [t.kind for t in parsed.tokens] == [TokenKind.POSITIONAL, TokenKind.FLAG, TokenKind.FLAG]
    assert parsed.parameter_values() == []


def test_unregistered_flag_does_not_take_value(parser):
    parsed = parser.parse("ls -l docs")
    assert parsed.tokens[1].kind == TokenKind.POSITIONAL


def test_long_flag_with_equals(parser):
    """--flag=value splits into a flag and its value."""
    parsed = parser.parse("dotnet build --configuration=Release")
    assert parsed.flags == ["--configuration"]
    assert parsed.parameter_values() == [("--configuration", "Release")]


def test_lone_dash_is_positional(parser):
    parsed = parser.parse("cd -")
    assert parsed.tokens[0].kind == TokenKind.POSITIONAL
    assert not is_flag_syntax("-")
    assert is_flag_syntax("-x")
    assert is_flag_syntax("--long")


def test_quotes_are_stripped():
    assert split_command_line("echo 'hello world' \"a b\"") == ["echo", "hello world", "a b"]


def test_backslash_escapes_only_quotes_and_backslash():
    """Windows paths keep their backslashes."""
    assert split_command_line(r"cd C:\Users\me") == ["cd", r"C:\Users\me"]
    assert split_command_line(r'echo \"quoted\"') == ["echo", '"quoted"']
    assert split_command_line(r"echo a\\b") == ["echo", r"a\b"]


def test_unclosed_quote_falls_back_to_whitespace_split(parser):
    """Malformed input never raises."""
    assert split_command_line('git commit -m "oops') == ["git", "commit", "-m", '"oops']
    parsed = parser.parse('git commit -m "oops')
    assert parsed.verb == "git"
    assert parsed.parameter_values() == [("-m", '"oops')]


def test_register_parameter_is_idempotent():
    registry = FlagRegistry()
    parser = CommandParser(registry)
    parser.register_parameter_requiring_value("--target")
    parser.register_parameter_requiring_value("--target")
    assert len(registry) == 1
    assert "--target" in registry
    assert parser.parse("make --target all").parameter_values() == [("--target", "all")]


def test_registry_is_shared_by_reference():
    """Registering through one parser is visible to another parser on the same registry."""
    registry = FlagRegistry()
    first = CommandParser(registry)
    second = CommandParser(registry)
    first.register_parameter_requiring_value("--env")
    assert second.parse("deploy --env prod").parameter_values() == [("--env", "prod")]


def test_registry_ignores_empty_flag():
    registry = FlagRegistry()
    registry.register("")
    assert len(registry) == 0


@pytest.mark.parametrize("line,expected", [
    ("git add .", "git add"),
    ("git push origin main", "git push"),
    ("docker build -t app .", "docker build"),
    ("ls -la", "ls"),
    ("git", "git"),
    ("kubectl -n prod get pods", "kubectl get"),
])
def test_command_key(parser, line, expected):
    """Multi-part tools are keyed by verb and subcommand."""
    assert parser.command_key_for_line(line) == expected


def test_custom_multi_part_commands(registry):
    parser = CommandParser(registry, multi_part_commands=["terraform"])
    assert parser.command_key_for_line("terraform plan") == "terraform plan"
    assert parser.command_key_for_line("git status") == "git"


@pytest.mark.parametrize("line", [
    "rm -f notes.txt",
    "tail -f app.log",
    "ssh -p 2222 host",
    "grep -c pattern file",
    "docker run -t ubuntu",
])
def test_short_flags_are_not_value_flags_everywhere(parser, line):
    """Common short flags are switches unless scoped to a command."""
    assert parser.parse(line).parameter_values() == []


@pytest.mark.parametrize("line,expected", [
    ("git checkout -b feature", [("-b", "feature")]),
    ("docker build -t app .", [("-t", "app")]),
    ("kubectl -n prod get pods", [("-n", "prod")]),
    ("dotnet build -c Release", [("-c", "Release")]),
    ("git commit -b x", []),
])
def test_scoped_value_flags(parser, line, expected):
    assert parser.parse(line).parameter_values() == expected


def test_rm_force_learns_positional(parser):
    parsed = parser.parse("rm -f notes.txt")
    assert parsed.flags == ["-f"]
    assert parsed.positionals == ["notes.txt"]


def test_register_scoped_flag():
    registry = FlagRegistry()
    parser = CommandParser(registry)
    parser.register_parameter_requiring_value("-r", "deploy")
    assert registry.requires_value("-r", "deploy")
    assert not registry.requires_value("-r")
    assert "-r" not in registry
    assert parser.parse("deploy -r eu").parameter_values() == [("-r", "eu")]
    assert parser.parse("ls -r docs").parameter_values() == []
