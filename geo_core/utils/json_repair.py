import json
import re
from typing import Any, Callable, List, Optional, Tuple

from loguru import logger

from geo_core.errors import MalformedOutputError

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
_CLOSERS = {"{": "}", "[": "]"}


class RobustJSONDecoder:
    """
    Extracts a JSON value from free-text model output.

    Strategies run in order and the first one that parses wins:
      1. strip Markdown code fences and parse directly
      2. cut at the last top-level closing brace, close a string left open
         by truncation and balance the open brackets
      3. parse the greedy ``{...}`` span
      4. escape raw control characters inside string literals and retry

    Nothing here checks the shape of the result; callers validate fields.
    """

    def decode(self, raw: str) -> Any:
        if raw is None or not raw.strip():
            raise MalformedOutputError(raw or "", "Model output is empty")

        cleaned = self.strip_fences(raw)
        strategies: List[Tuple[str, Callable[[str], Any]]] = [
            ("direct", self._parse_direct),
            ("truncation", self._parse_truncated),
            ("object-span", self._parse_object_span),
            ("control-chars", self._parse_escaped),
        ]

        for name, strategy in strategies:
            try:
                value = strategy(cleaned)
            except ValueError:
                continue
            if name != "direct":
                logger.debug(f"JSON recovered with '{name}' strategy")
            return value

        logger.warning(f"All JSON repair strategies failed ({len(raw)} chars)")
        raise MalformedOutputError(raw)

    @staticmethod
    def strip_fences(raw: str) -> str:
        cleaned = raw.strip()
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
        return cleaned.strip()

    def _parse_direct(self, text: str) -> Any:
        return json.loads(text)

    def _parse_truncated(self, text: str) -> Any:
        start = text.find("{")
        if start < 0:
            raise ValueError("no object start")

        errors = []
        for candidate in self._truncation_candidates(text[start:]):
            try:
                return json.loads(candidate)
            except ValueError as e:
                errors.append(e)
        raise ValueError(f"truncation repair failed after {len(errors)} candidates")

    def _parse_object_span(self, text: str) -> Any:
        match = _OBJECT_SPAN.search(text)
        if not match:
            raise ValueError("no object span")
        return json.loads(match.group(0))

    def _parse_escaped(self, text: str) -> Any:
        escaped = escape_control_chars(text)
        for strategy in (self._parse_direct, self._parse_truncated, self._parse_object_span):
            try:
                return strategy(escaped)
            except ValueError:
                continue
        raise ValueError("control character escaping did not help")

    def _truncation_candidates(self, text: str) -> List[str]:
        """
        Builds repaired versions of ``text``.

        The scan tracks string state and the bracket stack. If the root object
        closes, everything after it is dropped. Otherwise the open string is
        closed, and the remaining brackets are balanced. A second candidate
        cuts back to the last member separator for cases where the cut landed
        inside a key.
        """
        stack: List[str] = []
        in_string = False
        escaped = False
        last_separator: Optional[Tuple[int, List[str]]] = None

        for i, ch in enumerate(text):
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
            elif ch in _CLOSERS:
                stack.append(ch)
            elif ch in "}]":
                if stack:
                    stack.pop()
                if not stack:
                    # last top-level closing brace
                    return [text[: i + 1]]
            elif ch == ",":
                last_separator = (i, list(stack))

        candidates = []
        body = text
        if in_string:
            if escaped:
                body = body[:-1]
            body += '"'
        candidates.append(_close(_trim_dangling(body), stack))

        if last_separator is not None:
            cut, cut_stack = last_separator
            candidates.append(_close(text[:cut], cut_stack))

        return candidates


def _trim_dangling(body: str) -> str:
    body = body.rstrip()
    if body.endswith(","):
        return body[:-1]
    if body.endswith(":"):
        return body + " null"
    return body


def _close(body: str, stack: List[str]) -> str:
    return body + "".join(_CLOSERS[opener] for opener in reversed(stack))


def escape_control_chars(text: str) -> str:
    """Escapes raw control characters that appear inside JSON string literals."""
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ord(ch) < 0x20:
                out.append(_CONTROL_ESCAPES.get(ch, f"\\u{ord(ch):04x}"))
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


_default_decoder = RobustJSONDecoder()


def decode_json(raw: str) -> Any:
    """Module-level shortcut for ``RobustJSONDecoder().decode``."""
    return _default_decoder.decode(raw)
