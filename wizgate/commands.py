#!/usr/bin/env python3
"""
wizgate command validation

A user-supplied Wiz CLI invocation is checked in fixed stages, and the first
failing stage decides the error:

1. tokenize (shell-like, quotes stripped, no escapes)
2. at least one token
3. root command is on the allow-list for the CLI version
4. subcommand, when the root has subcommands and a second token exists
5. every token is non-empty and free of shell metacharacters

Flag values are not inspected; only the command structure and the absence
of metacharacters are enforced.
"""

import logging
import re
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, NamedTuple, Tuple

from wizgate.errors import ValidationError
from wizgate.logging import sanitize_for_log

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"""[^\s"']+|"([^"]*)"|'([^']*)'""")

FORBIDDEN_CHARACTERS = frozenset(";|&><`")


class CommandGrammar(NamedTuple):
    """Allowed root commands and, per root, its allowed subcommands."""
    root_commands: FrozenSet[str]
    subcommands: Mapping[str, FrozenSet[str]]


_LEGACY_GRAMMAR = CommandGrammar(
    root_commands=frozenset({"auth", "dir", "docker", "iac"}),
    subcommands=MappingProxyType({
        "dir": frozenset({"scan"}),
        "docker": frozenset({"scan"}),
        "iac": frozenset({"scan"}),
    }),
)

_CURRENT_GRAMMAR = CommandGrammar(
    root_commands=_LEGACY_GRAMMAR.root_commands | {"scan"},
    subcommands=MappingProxyType({
        **_LEGACY_GRAMMAR.subcommands,
        "scan": frozenset({"dir", "container-image", "vm", "vm-image"}),
    }),
)


class ToolVersion(Enum):
    """Wiz CLI generation. Each one has its own command grammar and output flag."""
    LEGACY = "v0"
    CURRENT = "v1"

    @property
    def grammar(self) -> CommandGrammar:
        return _GRAMMARS[self]

    @property
    def output_flags(self) -> Tuple[str, ...]:
        """Arguments appended when the caller did not choose an output format."""
        return _OUTPUT_FLAGS[self]

    def has_output_format(self, tokens: List[str]) -> bool:
        if self is ToolVersion.LEGACY:
            return any(
                t in ("-f", "--format") or t.startswith(("-f=", "--format="))
                for t in tokens
            )
        return any(t == "--stdout" or t.startswith("--stdout=") for t in tokens)


_GRAMMARS = {
    ToolVersion.LEGACY: _LEGACY_GRAMMAR,
    ToolVersion.CURRENT: _CURRENT_GRAMMAR,
}

_OUTPUT_FLAGS = {
    ToolVersion.LEGACY: ("-f", "json"),
    ToolVersion.CURRENT: ("--stdout", "json"),
}


def tokenize(text: str) -> List[str]:
    """Split *text* on whitespace, keeping quoted spans together.

    Quotes are removed from quoted spans. A quoted empty or blank string
    still yields a token, which validate_command() later rejects.
    """
    tokens = []
    for match in TOKEN_PATTERN.finditer(text or ""):
        double_quoted, single_quoted = match.group(1), match.group(2)
        if double_quoted is not None:
            tokens.append(double_quoted)
        elif single_quoted is not None:
            tokens.append(single_quoted)
        else:
            tokens.append(match.group(0))
    return tokens


def _check_argument(token: str) -> None:
    if not token.strip():
        raise ValidationError("Invalid command: empty argument")
    bad = sorted(FORBIDDEN_CHARACTERS.intersection(token))
    if bad:
        raise ValidationError(
            f"Invalid command: argument contains invalid characters ({' '.join(bad)})"
        )


def validate_command(text: str, version: ToolVersion) -> List[str]:
    """Validate a Wiz CLI invocation for *version*.

    Returns:
        The tokens of the command, ready to be passed as argv.

    Raises:
        ValidationError: On the first failing validation stage.
    """
    tokens = tokenize(text)
    if not tokens:
        raise ValidationError("Invalid command: no command provided")

    grammar = version.grammar
    root = tokens[0]
    if root not in grammar.root_commands:
        logger.debug("Rejected root command %s for %s", sanitize_for_log(root), version.value)
        raise ValidationError(
            f"Invalid root command: {root}. Allowed: {', '.join(sorted(grammar.root_commands))}"
        )

    allowed_subcommands = grammar.subcommands.get(root)
    if allowed_subcommands and len(tokens) > 1:
        subcommand = tokens[1]
        if subcommand not in allowed_subcommands:
            raise ValidationError(
                f"Invalid subcommand '{subcommand}' for root command '{root}'. "
                f"Allowed: {', '.join(sorted(allowed_subcommands))}"
            )

    for token in tokens:
        _check_argument(token)

    return tokens


def apply_output_format(tokens: List[str], version: ToolVersion) -> List[str]:
    """Append the version's JSON output flag unless one is already present."""
    if version.has_output_format(tokens):
        return list(tokens)
    return list(tokens) + list(version.output_flags)


def build_scan_arguments(text: str, executable: str, version: ToolVersion) -> List[str]:
    """Full argv for a validated scan: executable, user tokens, output flag."""
    tokens = validate_command(text, version)
    return [executable] + apply_output_format(tokens, version)
