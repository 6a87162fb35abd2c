"""Configuration statements and display commands.

A statement is either a plain CLI line ("set vlans v10 vlan-id 10"), which is
sent untouched, or a structured ``Statement`` rendered by
``render_statement``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

CMD_SHOW_CONFIG = "show configuration "
PIPE_DISPLAY_SET = " | display set"
PIPE_DISPLAY_SET_RELATIVE = " | display set relative"


class StatementKind(str, Enum):
    SET = "set"
    DELETE = "delete"


@dataclass(frozen=True)
class Statement:
    """One set/delete directive: path segments plus an optional leaf value."""
    kind: StatementKind
    path: tuple[str, ...]
    value: Optional[str] = None

    @classmethod
    def set(cls, *path: str, value: Optional[str] = None) -> "Statement":
        return cls(StatementKind.SET, tuple(path), value)

    @classmethod
    def delete(cls, *path: str) -> "Statement":
        return cls(StatementKind.DELETE, tuple(path))

    def __str__(self) -> str:
        return render_statement(self)


StatementLike = Union[str, Statement]


def quote(word: str) -> str:
    """Quote a word for the Junos CLI when it holds whitespace or quotes."""
    if word == "" or any(c.isspace() or c == '"' for c in word):
        escaped = word.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return word


def render_statement(statement: Statement) -> str:
    """Serialize a structured statement to its CLI line."""
    if not statement.path:
        raise ValueError(f"{statement.kind.value} statement without a configuration path")
    if statement.kind is StatementKind.DELETE and statement.value is not None:
        raise ValueError("delete statements take no value")

    words = [statement.kind.value]
    words.extend(quote(segment) for segment in statement.path)
    if statement.value is not None:
        words.append(quote(statement.value))
    return " ".join(words)


def normalize(statements: Iterable[StatementLike]) -> list[str]:
    """Render a batch to CLI lines, keeping order and duplicates."""
    lines = []
    for statement in statements:
        if isinstance(statement, Statement):
            lines.append(render_statement(statement))
        elif isinstance(statement, str):
            lines.append(statement)
        else:
            raise TypeError(f"unsupported statement type: {type(statement).__name__}")
    return lines


def show_config_command(path: str, relative: bool = False) -> str:
    """Build the display command for a configuration path."""
    pipe = PIPE_DISPLAY_SET_RELATIVE if relative else PIPE_DISPLAY_SET
    return CMD_SHOW_CONFIG + path + pipe
