"""Tolerant reader for JavaScript/TypeScript object literals.

Node source files declare their metadata as object literals. This module
reads those literals into plain Python values without a full TypeScript
grammar:

- strings (single, double, template), numbers, booleans, null/undefined,
  arrays and objects are read as values
- spreads, computed keys, method shorthand and shorthand properties are
  skipped
- any other expression (identifiers, calls, arrow functions, operators) is
  skipped and the property dropped
- ``as``/``satisfies`` type assertions after a value are ignored

Unbalanced brackets or unterminated strings raise ``LiteralSyntaxError``.
"""

import re
from typing import Any, Dict, List, Tuple

from node_catalog.core.errors import LiteralSyntaxError


class _Unresolved:
    """Marker for a value that is an expression rather than a literal."""

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()

_IDENT_RE = re.compile(r"[A-Za-z_$][\w$]*")
_NUMBER_RE = re.compile(
    r"-?(?:0[xX][0-9a-fA-F_]+|0[bB][01_]+|0[oO][0-7_]+|(?:\d[\d_]*\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)
_KEYWORDS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}
_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_TERMINATORS = ",}]"


class _Reader:
    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos

    # ------------------------------------------------------------------
    # Low-level scanning
    # ------------------------------------------------------------------

    def _error(self, message: str) -> LiteralSyntaxError:
        return LiteralSyntaxError(message, self.pos)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_ws(self) -> None:
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if char.isspace():
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end + 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    raise self._error("Unterminated block comment")
                self.pos = end + 2
            else:
                break

    def read_identifier(self) -> str:
        match = _IDENT_RE.match(self.text, self.pos)
        if not match:
            raise self._error("Expected identifier")
        self.pos = match.end()
        return match.group(0)

    def read_string(self) -> str:
        quote = self.text[self.pos]
        self.pos += 1
        parts: List[str] = []
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if char == quote:
                self.pos += 1
                return "".join(parts)
            if char == "\\":
                parts.append(self._read_escape())
                continue
            if char == "\n" and quote != "`":
                raise self._error("Unterminated string literal")
            if quote == "`" and text.startswith("${", self.pos):
                start = self.pos
                self.pos += 1
                self.skip_group()
                parts.append(text[start:self.pos])
                continue
            parts.append(char)
            self.pos += 1
        raise self._error("Unterminated string literal")

    def _read_escape(self) -> str:
        text = self.text
        self.pos += 1
        if self.pos >= len(text):
            raise self._error("Dangling escape")
        char = text[self.pos]
        self.pos += 1
        if char in _ESCAPES:
            return _ESCAPES[char]
        if char == "\n":
            return ""
        if char == "x":
            code = text[self.pos:self.pos + 2]
            self.pos += 2
            return self._codepoint(code)
        if char == "u":
            if self.peek() == "{":
                end = text.find("}", self.pos)
                if end == -1:
                    raise self._error("Unterminated unicode escape")
                code = text[self.pos + 1:end]
                self.pos = end + 1
            else:
                code = text[self.pos:self.pos + 4]
                self.pos += 4
            return self._codepoint(code)
        return char

    def _codepoint(self, code: str) -> str:
        try:
            return chr(int(code, 16))
        except ValueError as exc:
            raise self._error(f"Invalid escape sequence {code!r}") from exc

    def read_number(self) -> Any:
        match = _NUMBER_RE.match(self.text, self.pos)
        if not match or match.end() == self.pos:
            raise self._error("Expected number")
        self.pos = match.end()
        literal = match.group(0).replace("_", "")
        sign = -1 if literal.startswith("-") else 1
        body = literal.lstrip("-")
        prefix = body[:2].lower()
        if prefix in ("0x", "0b", "0o"):
            return sign * int(body[2:], {"0x": 16, "0b": 2, "0o": 8}[prefix])
        if any(c in body for c in ".eE"):
            return float(literal)
        return int(literal)

    def skip_group(self) -> None:
        """Skip a balanced (), [] or {} group starting at the current position."""
        stack = [_CLOSERS[self.text[self.pos]]]
        self.pos += 1
        while stack:
            self.skip_ws()
            char = self.peek()
            if not char:
                raise self._error(f"Unbalanced input, expected {stack[-1]!r}")
            if char in "'\"`":
                self.read_string()
            elif char in _CLOSERS:
                stack.append(_CLOSERS[char])
                self.pos += 1
            elif char in ")]}":
                if char != stack[-1]:
                    raise self._error(f"Mismatched {char!r}, expected {stack[-1]!r}")
                stack.pop()
                self.pos += 1
            else:
                self.pos += 1

    def skip_expression(self) -> None:
        """Skip to the next top-level ``,``, ``}`` or ``]``."""
        while True:
            self.skip_ws()
            char = self.peek()
            if not char:
                raise self._error("Unexpected end of input in expression")
            if char in _TERMINATORS:
                return
            if char == ")":
                raise self._error("Mismatched ')'")
            if char in "'\"`":
                self.read_string()
            elif char in _CLOSERS:
                self.skip_group()
            else:
                self.pos += 1

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def read_value(self) -> Any:
        self.skip_ws()
        char = self.peek()
        if not char:
            raise self._error("Unexpected end of input")

        if char == "{":
            value: Any = self.read_object()
        elif char == "[":
            value = self.read_array()
        elif char in "'\"`":
            value = self.read_string()
        elif char.isdigit() or (char in "-." and _NUMBER_RE.match(self.text, self.pos)):
            value = self.read_number()
        else:
            match = _IDENT_RE.match(self.text, self.pos)
            if match and match.group(0) in _KEYWORDS:
                self.pos = match.end()
                value = _KEYWORDS[match.group(0)]
            else:
                self.skip_expression()
                return UNRESOLVED

        return self._finish_value(value)

    def _finish_value(self, value: Any) -> Any:
        """Accept trailing type assertions; anything else makes the value an expression."""
        self.skip_ws()
        char = self.peek()
        if not char or char in _TERMINATORS:
            return value
        match = _IDENT_RE.match(self.text, self.pos)
        if match and match.group(0) in ("as", "satisfies"):
            self.skip_expression()
            return value
        self.skip_expression()
        return UNRESOLVED

    def _consume_separator(self, closer: str) -> None:
        """Consume the ``,`` after an item; leave ``closer`` for the caller."""
        self.skip_ws()
        char = self.peek()
        if char == ",":
            self.pos += 1
            return
        if char == closer:
            return
        if not char:
            raise self._error(f"Unexpected end of input, expected {closer!r}")
        raise self._error(f"Expected ',' or {closer!r}")

    def read_array(self) -> List[Any]:
        self.pos += 1
        items: List[Any] = []
        while True:
            self.skip_ws()
            char = self.peek()
            if not char:
                raise self._error("Unterminated array")
            if char == "]":
                self.pos += 1
                return items
            if char == ",":
                # Hole
                self.pos += 1
                continue
            if self.text.startswith("...", self.pos):
                self.pos += 3
                self.skip_expression()
            else:
                value = self.read_value()
                if value is not UNRESOLVED:
                    items.append(value)
            self._consume_separator("]")

    def read_object(self) -> Dict[str, Any]:
        self.pos += 1
        result: Dict[str, Any] = {}
        while True:
            self.skip_ws()
            char = self.peek()
            if not char:
                raise self._error("Unterminated object")
            if char == "}":
                self.pos += 1
                return result

            if self.text.startswith("...", self.pos):
                self.pos += 3
                self.skip_expression()
                self._consume_separator("}")
                continue

            key = self._read_key()
            self.skip_ws()
            if key is not None and self.peek() == ":":
                self.pos += 1
                value = self.read_value()
                if value is not UNRESOLVED:
                    result[key] = value
            else:
                # Computed key, method shorthand, accessor or shorthand property
                self.skip_expression()
            self._consume_separator("}")

    def _read_key(self) -> Any:
        char = self.peek()
        if char in "'\"":
            return self.read_string()
        if char == "[":
            self.skip_group()
            return None
        if char.isdigit():
            return str(self.read_number())
        key = self.read_identifier()
        self.skip_ws()
        if self.peek() == "?":
            # Optional marker in type-annotated literals
            self.pos += 1
        return key


def read_object_literal(text: str, start: int = 0) -> Tuple[Dict[str, Any], int]:
    """Read the object literal beginning at ``start``.

    Args:
        text: Source text
        start: Offset of the opening brace (leading whitespace is allowed)

    Returns:
        (parsed object, offset just past the closing brace)

    Raises:
        LiteralSyntaxError: If there is no object at ``start`` or it is malformed
    """
    reader = _Reader(text, start)
    reader.skip_ws()
    if reader.peek() != "{":
        raise LiteralSyntaxError("Expected '{'", reader.pos)
    obj = reader.read_object()
    return obj, reader.pos


def read_literal(text: str) -> Any:
    """Read a single literal value spanning the whole of ``text``."""
    reader = _Reader(text)
    value = reader.read_value()
    reader.skip_ws()
    if reader.pos < len(text):
        raise LiteralSyntaxError("Trailing characters after literal", reader.pos)
    return value
