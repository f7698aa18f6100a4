# shellcue/learning/parser.py
"""
Command line tokenizer and parser.

Splits a command line into a verb and tagged tokens (flags, parameter values
and positional arguments).  Parsing never fails: malformed input degrades to
a plain whitespace split.
"""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, FrozenSet

from shellcue.constants import DEFAULT_SCOPED_VALUE_FLAGS, DEFAULT_VALUE_FLAGS, MULTI_PART_COMMANDS

_QUOTES = ('"', "'")
_ESCAPABLE = ('\\', '"', "'")


class TokenKind(str, Enum):
    """Classification of a command line token."""
    FLAG = "flag"
    PARAMETER_VALUE = "parameter-value"
    POSITIONAL = "positional"


@dataclass(frozen=True)
class Token:
    """A single argument of a parsed command line."""
    text: str
    kind: TokenKind
    for_flag: Optional[str] = None

    @property
    def is_flag(self) -> bool:
        return self.kind == TokenKind.FLAG


@dataclass(frozen=True)
class ParsedCommand:
    """Immutable result of parsing a command line."""
    verb: str = ""
    tokens: Tuple[Token, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.verb

    @property
    def args(self) -> List[str]:
        """All argument texts in order, parameter values included."""
        return [token.text for token in self.tokens]

    @property
    def flags(self) -> List[str]:
        return [token.text for token in self.tokens if token.kind == TokenKind.FLAG]

    @property
    def positionals(self) -> List[str]:
        return [token.text for token in self.tokens if token.kind == TokenKind.POSITIONAL]

    def parameter_values(self) -> List[Tuple[str, str]]:
        """(flag, value) pairs in order of appearance."""
        return [
            (token.for_flag, token.text)
            for token in self.tokens
            if token.kind == TokenKind.PARAMETER_VALUE and token.for_flag
        ]


def is_flag_syntax(text: str) -> bool:
    """True for '-x' and '--long'; a lone '-' is positional."""
    return len(text) > 1 and text.startswith("-")


class FlagRegistry:
    """
    Flags known to take a following value.

    Shared by reference between the parser and the predictor so both agree on
    what counts as a parameter value.  Global flags apply to every command;
    scoped flags only to the named verb or "verb subcommand".  Written at
    configuration time, read on every parse.
    """

    def __init__(
        self,
        flags: Optional[Iterable[str]] = None,
        scoped: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self._lock = threading.Lock()
        self._flags: FrozenSet[str] = frozenset(flags or ())
        self._scoped: Dict[str, FrozenSet[str]] = {
            command: frozenset(names) for command, names in (scoped or {}).items() if command
        }

    def register(self, flag: str, command: Optional[str] = None) -> None:
        """Register a flag as requiring a value, for one command when given.  Idempotent."""
        if not flag:
            return
        with self._lock:
            if command:
                current = self._scoped.get(command, frozenset())
                if flag not in current:
                    scoped = dict(self._scoped)
                    scoped[command] = current | {flag}
                    self._scoped = scoped
            elif flag not in self._flags:
                self._flags = self._flags | {flag}

    def requires_value(self, flag: str, *commands: str) -> bool:
        """True when flag takes a value globally or for any of commands."""
        # Reads see an immutable snapshot, no lock needed
        if flag in self._flags:
            return True
        scoped = self._scoped
        return any(flag in scoped.get(command, ()) for command in commands)

    def __contains__(self, flag: str) -> bool:
        return self.requires_value(flag)

    def __len__(self) -> int:
        return len(self._flags)

    @property
    def flags(self) -> FrozenSet[str]:
        return self._flags

    @property
    def scoped(self) -> Dict[str, FrozenSet[str]]:
        return dict(self._scoped)

    @classmethod
    def with_defaults(cls) -> "FlagRegistry":
        return cls(DEFAULT_VALUE_FLAGS, DEFAULT_SCOPED_VALUE_FLAGS)


def value_flag_scopes(verb: str, subcommand: Optional[str] = None) -> Tuple[str, ...]:
    """Registry scopes that apply to a command: the verb, then "verb subcommand"."""
    if not verb:
        return ()
    if subcommand:
        return verb, f"{verb} {subcommand}"
    return (verb,)


def split_command_line(line: str) -> List[str]:
    """
    Split a command line into words.

    Quoted substrings stay one word with the quotes removed.  A backslash only
    escapes a backslash or a quote, so Windows paths survive untouched.  An
    unterminated quote falls back to a plain whitespace split.
    """
    words: List[str] = []
    current: List[str] = []
    in_word = False
    quote: Optional[str] = None
    i = 0

    while i < len(line):
        c = line[i]

        if c == '\\' and i + 1 < len(line) and line[i + 1] in _ESCAPABLE:
            current.append(line[i + 1])
            in_word = True
            i += 2
            continue

        if quote:
            if c == quote:
                quote = None
            else:
                current.append(c)
        elif c in _QUOTES:
            quote = c
            in_word = True
        elif c.isspace():
            if in_word:
                words.append("".join(current))
                current = []
                in_word = False
        else:
            current.append(c)
            in_word = True
        i += 1

    if quote:
        return line.split()

    if in_word:
        words.append("".join(current))
    return words


class CommandParser:
    """Parses command lines against a shared FlagRegistry."""

    def __init__(
        self,
        registry: Optional[FlagRegistry] = None,
        multi_part_commands: Optional[Iterable[str]] = None,
    ):
        self.registry = registry if registry is not None else FlagRegistry.with_defaults()
        self.multi_part_commands = frozenset(
            multi_part_commands if multi_part_commands is not None else MULTI_PART_COMMANDS
        )

    def register_parameter_requiring_value(self, flag: str, command: Optional[str] = None) -> None:
        self.registry.register(flag, command)

    def parse(self, line: Optional[str]) -> ParsedCommand:
        """
        Parse a command line.

        Args:
            line: The raw command line

        Returns:
            The parsed command; empty when the line is blank
        """
        if not line or not line.strip():
            return ParsedCommand()

        words = split_command_line(line)
        if not words:
            return ParsedCommand()

        return ParsedCommand(verb=words[0], tokens=tuple(self.tag_tokens(words[1:], words[0])))

    def tag_tokens(self, words: List[str], verb: str = "") -> List[Token]:
        """
        Classify argument words into flags, parameter values and positionals.

        Flags scoped to verb apply throughout; flags scoped to "verb sub" apply
        once the first positional has been seen.
        """
        tokens: List[Token] = []
        pending_flag: Optional[str] = None
        scopes = value_flag_scopes(verb)

        for word in words:
            if word.startswith("--") and "=" in word:
                name, value = word.split("=", 1)
                tokens.append(Token(name, TokenKind.FLAG))
                tokens.append(Token(value, TokenKind.PARAMETER_VALUE, for_flag=name))
                pending_flag = None
                continue

            if is_flag_syntax(word):
                tokens.append(Token(word, TokenKind.FLAG))
                pending_flag = word if self.registry.requires_value(word, *scopes) else None
                continue

            if pending_flag:
                tokens.append(Token(word, TokenKind.PARAMETER_VALUE, for_flag=pending_flag))
            else:
                if len(scopes) == 1:
                    scopes = value_flag_scopes(verb, word)
                tokens.append(Token(word, TokenKind.POSITIONAL))
            pending_flag = None

        return tokens

    def subcommand(self, parsed: ParsedCommand) -> Optional[str]:
        """The subcommand of a multi-part command (e.g. 'commit' for git), if any."""
        if parsed.verb not in self.multi_part_commands:
            return None
        for token in parsed.tokens:
            if token.kind == TokenKind.POSITIONAL:
                return token.text
        return None

    def command_key(self, parsed: ParsedCommand) -> str:
        """
        Key used by the sequence and workflow models.

        'git add .' -> 'git add', 'ls -la' -> 'ls'.
        """
        sub = self.subcommand(parsed)
        return f"{parsed.verb} {sub}" if sub else parsed.verb

    def command_key_for_line(self, line: str) -> str:
        return self.command_key(self.parse(line))
