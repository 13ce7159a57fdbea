"""Repair engine for near-valid JSON returned by the provider.

Model output is frequently *almost* JSON: wrapped in markdown fences or
prose, cut off mid-string when the token budget runs out, sprinkled with
trailing commas or single quotes, or using near-miss spellings for values
that must come from a closed set.  :func:`repair_and_parse` recovers what it
can, in this order:

1. **Extraction** of the bracket-balanced JSON span from surrounding text.
2. **Syntax normalization** (trailing commas, quoting, literals, control
   characters, mismatched brackets).
3. **Truncation repair** (close the open string, drop dangling tokens,
   append the missing closers; as a last resort drop the incomplete tail
   element).
4. **Enum normalization** of known closed-set fields.

The engine never raises.  Counters live in a :class:`RepairMetrics` object;
a process-wide instance backs the default, and callers may inject their own.
"""

from __future__ import annotations

import copy
import json
import re
import threading
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    AIProvider,
    AnalyticsProvider,
    AuthProvider,
    Category,
    ComponentTemplate,
    ComponentType,
    Complexity,
    DatabaseProvider,
    EmailProvider,
    HTTPMethod,
    PageLayout,
    PaymentsProvider,
    RouteType,
    StorageProvider,
)

EXTRACTED_REPAIR = "Extracted JSON from surrounding text"
AGGRESSIVE_REPAIR = "Aggressive truncation repair"

# How many trailing elements the aggressive pass may drop before giving up.
_MAX_AGGRESSIVE_CUTS = 50


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class RepairCounts(BaseModel):
    """Immutable snapshot of the repair counters."""

    model_config = ConfigDict(frozen=True)

    enum_normalizations: int = 0
    json_extractions: int = 0
    truncation_repairs: int = 0
    bracket_balances: int = 0
    syntax_fixes: int = 0

    @property
    def total(self) -> int:
        return (
            self.enum_normalizations
            + self.json_extractions
            + self.truncation_repairs
            + self.bracket_balances
            + self.syntax_fixes
        )


_COUNTER_NAMES: tuple[str, ...] = tuple(RepairCounts.model_fields)


class RepairMetrics:
    """Lock-guarded repair counters.

    Counters only grow until :meth:`reset` is called.  Safe to share between
    threads and between concurrently running pipelines.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = dict.fromkeys(_COUNTER_NAMES, 0)

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown repair counter: {name}")
        if amount < 0:
            raise ValueError("Repair counters cannot decrease")
        with self._lock:
            self._counts[name] += amount

    def snapshot(self) -> RepairCounts:
        """Return a copy of the current counter values."""
        with self._lock:
            return RepairCounts(**self._counts)

    def reset(self) -> None:
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0


_global_metrics = RepairMetrics()


def get_repair_metrics() -> RepairMetrics:
    """Return the process-wide :class:`RepairMetrics` instance."""
    return _global_metrics


def reset_repair_metrics() -> None:
    """Zero the process-wide repair counters."""
    _global_metrics.reset()


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class RepairResult(BaseModel):
    """Outcome of one :func:`repair_and_parse` call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    repaired: bool = False
    repairs: list[str] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Lexical helpers
# ---------------------------------------------------------------------------

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}": "{", "]": "["}


def _scan(text: str) -> tuple[list[str], bool]:
    """Return the stack of unclosed openers and whether *text* ends inside a string."""
    stack: list[str] = []
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
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(ch)
        elif ch in _CLOSERS and stack and stack[-1] == _CLOSERS[ch]:
            stack.pop()
    return stack, in_string


def _span_end(text: str, start: int) -> Optional[int]:
    """Index of the bracket closing the span opened at *start*, or ``None``."""
    expected: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
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
        elif ch in _OPENERS:
            expected.append(_OPENERS[ch])
        elif ch in _CLOSERS and ch in expected:
            while expected[-1] != ch:
                expected.pop()
            expected.pop()
            if not expected:
                return i
    return None


def _next_opener(text: str, pos: int) -> Optional[int]:
    positions = [p for p in (text.find("{", pos), text.find("[", pos)) if p != -1]
    return min(positions) if positions else None


def _salvageable(span: str) -> bool:
    """Whether the repair chain can turn *span* into parseable JSON."""
    current = span
    for _label, fixer, _counters in _FIXERS:
        current = fixer(current)
        if _try_parse(current)[1]:
            return True
    return any(_try_parse(candidate)[1] for candidate in _aggressive_candidates(current))


def extract_json(text: str) -> Optional[str]:
    """Return the structured-data span embedded in *text*.

    Every top-level ``{...}`` / ``[...]`` span is considered.  A span whose
    brackets never close is kept as the truncation candidate only when the
    repair chain can salvage it; otherwise scanning continues past its
    opener, so an unclosed ``[`` in the surrounding prose does not hide the
    payload after it.  Among closed spans the longest one that parses as-is
    wins.  The span is returned byte-for-byte as it appears in *text*.
    """
    closed: list[tuple[int, str]] = []
    unclosed: list[tuple[int, str]] = []
    pos = 0
    while True:
        start = _next_opener(text, pos)
        if start is None:
            break
        end = _span_end(text, start)
        if end is None:
            unclosed.append((start, text[start:].rstrip()))
            pos = start + 1
            continue
        closed.append((start, text[start : end + 1]))
        pos = end + 1

    truncated = next(((start, span) for start, span in unclosed if _salvageable(span)), None)
    if truncated is not None:
        # Closed spans after the truncated opener are nested inside it.
        candidates = [span for start, span in closed if start < truncated[0]]
        candidates.append(truncated[1])
        return max(candidates, key=len)
    if closed:
        parseable = [span for _, span in closed if _try_parse(span)[1]]
        return max(parseable or [span for _, span in closed], key=len)
    return unclosed[0][1] if unclosed else None


def _try_parse(text: str) -> tuple[Any, bool]:
    try:
        return json.loads(text), True
    except (json.JSONDecodeError, ValueError):
        return None, False


# ---------------------------------------------------------------------------
# Syntax fixers
# ---------------------------------------------------------------------------

def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing bracket."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            out.append(ch)
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
            j = len(out) - 1
            while j >= 0 and out[j].isspace():
                j -= 1
            if j >= 0 and out[j] == ",":
                del out[j]
        out.append(ch)
    return "".join(out)


def normalize_quotes(text: str) -> str:
    """Rewrite single-quoted keys and strings as double-quoted JSON strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if ch != "'":
            out.append(ch)
            i += 1
            continue

        # Single-quoted literal: collect up to the next unescaped quote.
        chars: list[str] = []
        j = i + 1
        closed = False
        while j < len(text):
            c = text[j]
            if c == "\\" and j + 1 < len(text):
                nxt = text[j + 1]
                chars.append("'" if nxt == "'" else c + nxt)
                j += 2
                continue
            if c == "'":
                closed = True
                break
            chars.append('\\"' if c == '"' else c)
            j += 1
        out.append('"' + "".join(chars) + ('"' if closed else ""))
        i = j + 1
    return "".join(out)


_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}


def normalize_literals(text: str) -> str:
    """Replace Python-style ``True``/``False``/``None`` outside strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch.isalpha():
            j = i
            while j < len(text) and text[j].isalnum():
                j += 1
            word = text[i:j]
            out.append(_PY_LITERALS.get(word, word))
            i = j
            continue
        out.append(ch)
        i += 1
    return "".join(out)


_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def escape_control_characters(text: str) -> str:
    """Escape raw control characters inside strings; drop stray ones outside."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        code = ord(ch)
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif code < 0x20:
                out.append(_CONTROL_ESCAPES.get(ch, f"\\u{code:04x}"))
                continue
            out.append(ch)
            continue
        if ch == '"':
            in_string = True
        elif code < 0x20 and ch not in "\n\r\t":
            continue
        out.append(ch)
    return "".join(out)


def balance_mismatched_brackets(text: str) -> str:
    """Insert closers skipped before an outer closer and drop stray closers.

    ``{"items": [1, 2}`` becomes ``{"items": [1, 2]}``.  Unclosed openers at
    the end of the text are left for :func:`close_truncated`.
    """
    out: list[str] = []
    expected: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            expected.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if ch not in expected:
                continue
            while expected[-1] != ch:
                out.append(expected.pop())
            expected.pop()
        out.append(ch)
    return "".join(out)


# ---------------------------------------------------------------------------
# Truncation repair
# ---------------------------------------------------------------------------

_STRING_TOKEN = r'"(?:[^"\\]|\\.)*"'
_KEY_WITH_COLON = re.compile(_STRING_TOKEN + r"\s*:$")
_BARE_KEY = re.compile(r"([{,])\s*" + _STRING_TOKEN + r"$")
# An odd trailing backslash, optionally with an incomplete \uXXXX escape.
_PARTIAL_ESCAPE = re.compile(r"(?<!\\)(?:\\\\)*(\\(?:u[0-9a-fA-F]{0,3})?)$")
_PARTIAL_LITERAL = re.compile(
    r"(?<=[\[:,])\s*(?:t(?:ru?)?|f(?:a(?:ls?)?)?|n(?:ul?)?|-|-?\d+\.|-?\d+(?:\.\d+)?[eE][+-]?)$"
)


def _trim_dangling(text: str) -> str:
    """Strip tokens that cannot legally end a container (``,``, ``"key":``, ``tru``...)."""
    while True:
        stripped = text.rstrip()
        if stripped.endswith(","):
            text = stripped[:-1]
            continue
        if stripped.endswith(":"):
            match = _KEY_WITH_COLON.search(stripped)
            text = stripped[: match.start()] if match else stripped[:-1]
            continue
        match = _PARTIAL_LITERAL.search(stripped)
        if match:
            text = stripped[: match.start()]
            continue
        match = _BARE_KEY.search(stripped)
        if match:
            stack, _ = _scan(stripped)
            if stack and stack[-1] == "{":
                text = stripped[: match.start() + 1]
                continue
        return stripped


def close_truncated(text: str) -> str:
    """Close an output that was cut off mid-emission.

    Closes an unterminated string, drops dangling separators and keys, then
    appends the minimum closers needed to balance every open bracket.
    """
    stack, in_string = _scan(text)
    if not stack and not in_string:
        return text

    result = text
    if in_string:
        partial = _PARTIAL_ESCAPE.search(result)
        if partial:
            result = result[: partial.start(1)]
        result += '"'
    result = _trim_dangling(result)
    stack, _ = _scan(result)
    return result + "".join(_OPENERS[opener] for opener in reversed(stack))


def _comma_positions(text: str) -> list[int]:
    positions: list[int] = []
    in_string = False
    escaped = False
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
        elif ch == ",":
            positions.append(i)
    return positions


def _aggressive_candidates(text: str) -> Iterator[str]:
    """Yield *text* with progressively more trailing elements removed, then closed."""
    for pos in reversed(_comma_positions(text)[-_MAX_AGGRESSIVE_CUTS:]):
        yield close_truncated(text[:pos])


# (repair label, fixer, counters incremented when the fixer changes the text)
_FIXERS: list[tuple[str, Callable[[str], str], tuple[str, ...]]] = [
    ("Remove trailing commas", remove_trailing_commas, ("syntax_fixes",)),
    ("Normalize quotes", normalize_quotes, ("syntax_fixes",)),
    ("Normalize literals", normalize_literals, ("syntax_fixes",)),
    ("Escape control characters", escape_control_characters, ("syntax_fixes",)),
    ("Balance brackets", balance_mismatched_brackets, ("bracket_balances",)),
    ("Close truncated output", close_truncated, ("truncation_repairs",)),
]


# ---------------------------------------------------------------------------
# Enum normalization
# ---------------------------------------------------------------------------

def _slug(value: str) -> str:
    return re.sub(r"[\s_]+", "-", value.strip().lower())


def _choose(
    value: str,
    canonical: set[str],
    synonyms: dict[str, str],
    default: Optional[str] = None,
) -> Optional[str]:
    """Map a near-miss spelling onto a canonical enum value."""
    slug = _slug(value)
    if slug in canonical:
        return slug
    if slug in synonyms:
        return synonyms[slug]
    compact = slug.replace("-", "")
    for candidate in canonical:
        if candidate.replace("-", "") == compact:
            return candidate
    leading = re.match(r"[a-z0-9]+(?:-[a-z0-9]+)*", slug)
    if leading:
        head = leading.group(0)
        for candidate in sorted(canonical, key=len, reverse=True):
            if head == candidate or head.startswith(candidate + "-"):
                return candidate
        first = head.split("-")[0]
        if first in canonical:
            return first
        if first in synonyms:
            return synonyms[first]
    return default


def _values(enum_cls: Any) -> set[str]:
    return {member.value for member in enum_cls}


_CATEGORIES = _values(Category)
_CATEGORY_SYNONYMS = {
    "landing": "landing-page",
    "landingpage": "landing-page",
    "marketing": "landing-page",
    "marketing-site": "landing-page",
    "website": "landing-page",
    "e-commerce": "ecommerce",
    "shop": "ecommerce",
    "store": "ecommerce",
    "online-store": "ecommerce",
    "admin": "dashboard",
    "admin-panel": "dashboard",
    "analytics": "dashboard",
    "internal": "internal-tool",
    "tool": "internal-tool",
    "crm": "internal-tool",
    "software-as-a-service": "saas",
    "subscription": "saas",
    "personal-site": "portfolio",
    "content": "blog",
}

_COMPLEXITIES = _values(Complexity)
_COMPLEXITY_SYNONYMS = {
    "low": "simple",
    "easy": "simple",
    "basic": "simple",
    "medium": "moderate",
    "mid": "moderate",
    "intermediate": "moderate",
    "high": "complex",
    "hard": "complex",
    "advanced": "complex",
}

# capability -> (allowed providers, provider used when the model answers ``true``)
_INTEGRATIONS: dict[str, tuple[set[str], str]] = {
    "auth": (_values(AuthProvider), "supabase"),
    "db": (_values(DatabaseProvider), "supabase"),
    "payments": (_values(PaymentsProvider), "stripe"),
    "email": (_values(EmailProvider), "resend"),
    "ai": (_values(AIProvider), "openai"),
    "analytics": (_values(AnalyticsProvider), "posthog"),
    "storage": (_values(StorageProvider), "supabase"),
}
_INTEGRATION_SYNONYMS = {
    "lemonsqueezy": "lemon-squeezy",
    "next-auth": "nextauth",
    "authjs": "nextauth",
    "auth-js": "nextauth",
    "r2": "cloudflare",
    "cloudflare-r2": "cloudflare",
    "aws-s3": "s3",
    "aws": "s3",
    "gpt": "openai",
    "claude": "anthropic",
}
_NULL_WORDS = {"", "none", "null", "false", "no", "n/a", "na"}
_TRUE_WORDS = {"true", "yes"}

_ROUTE_TYPES = _values(RouteType)
_ROUTE_TYPE_SYNONYMS = {
    "endpoint": "api",
    "api-route": "api",
    "rest": "api",
    "ui": "page",
    "route": "page",
    "view": "page",
    "screen": "page",
}

_COMPONENT_TYPES = _values(ComponentType)
_COMPONENT_TYPE_SYNONYMS = {
    "component": "ui",
    "shared": "ui",
    "section": "ui",
    "widget": "ui",
    "primitive": "ui",
    "container": "layout",
    "wrapper": "layout",
    "navigation": "layout",
    "nav": "layout",
    "input": "form",
    "module": "feature",
}

_COMPONENT_TEMPLATES = _values(ComponentTemplate)
_COMPONENT_TEMPLATE_SYNONYMS = {
    "new": "create-new",
    "create": "create-new",
    "custom": "create-new",
    "existing": "create-new",
    "reused": "reuse",
    "library": "reuse",
    "shadcn": "reuse",
}

_LAYOUTS = _values(PageLayout)
_LAYOUT_SYNONYMS = {
    "landing": "default",
    "marketing": "default",
    "main": "default",
    "public": "default",
    "admin": "dashboard",
    "app": "dashboard",
    "sidebar": "dashboard",
    "login": "auth",
    "signin": "auth",
    "sign-in": "auth",
    "blank": "minimal",
    "empty": "minimal",
    "fullscreen": "minimal",
}

_HTTP_METHODS = _values(HTTPMethod)

_CATEGORY_KEYS = ("category", "suggestedTemplate", "suggested_template", "template")


def _normalize_integration(capability: str, value: Any) -> Any:
    allowed, default = _INTEGRATIONS[capability]
    if value is None:
        return None
    if value is True:
        return default
    if not isinstance(value, str):
        return None
    slug = _slug(value)
    if slug in _NULL_WORDS:
        return None
    if slug in _TRUE_WORDS:
        return default
    return _choose(slug, allowed, _INTEGRATION_SYNONYMS)


def _normalize_method(value: Any) -> Any:
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, str)), None)
    if not isinstance(value, str):
        return value
    for part in re.split(r"[^A-Za-z]+", value):
        if part:
            upper = part.upper()
            return upper if upper in _HTTP_METHODS else HTTPMethod.GET.value
    return HTTPMethod.GET.value


class _EnumNormalizer:
    """Walks parsed data and rewrites known closed-set fields in place."""

    def __init__(self, metrics: RepairMetrics) -> None:
        self.metrics = metrics
        self.repairs: list[str] = []

    def _set(self, node: dict[str, Any], key: str, new: Any) -> None:
        old = node[key]
        if old is new or (type(old) is type(new) and old == new):
            return
        node[key] = new
        self.repairs.append(
            f"Normalized {key}: {json.dumps(old, default=str)} → {json.dumps(new)}"
        )
        self.metrics.increment("enum_normalizations")

    def _string_choice(
        self,
        node: dict[str, Any],
        key: str,
        canonical: set[str],
        synonyms: dict[str, str],
        default: Optional[str] = None,
    ) -> None:
        value = node.get(key)
        if not isinstance(value, str):
            return
        chosen = _choose(value, canonical, synonyms, default)
        if chosen is not None:
            self._set(node, key, chosen)

    def walk(self, node: Any, parent_key: Optional[str] = None) -> None:
        if isinstance(node, list):
            for item in node:
                self.walk(item, parent_key)
            return
        if not isinstance(node, dict):
            return

        if parent_key == "integrations":
            for capability in list(node):
                if capability in _INTEGRATIONS:
                    self._set(node, capability, _normalize_integration(capability, node[capability]))
        elif parent_key == "components":
            self._string_choice(node, "type", _COMPONENT_TYPES, _COMPONENT_TYPE_SYNONYMS, "ui")
            self._string_choice(
                node, "template", _COMPONENT_TEMPLATES, _COMPONENT_TEMPLATE_SYNONYMS, "create-new"
            )
        elif parent_key == "pages":
            self._string_choice(node, "layout", _LAYOUTS, _LAYOUT_SYNONYMS, "default")
        elif parent_key == "routes":
            if "method" in node:
                self._set(node, "method", _normalize_method(node["method"]))
            self._string_choice(node, "type", _ROUTE_TYPES, _ROUTE_TYPE_SYNONYMS, "api")
        else:
            for key in _CATEGORY_KEYS:
                self._string_choice(node, key, _CATEGORIES, _CATEGORY_SYNONYMS)
            self._string_choice(node, "complexity", _COMPLEXITIES, _COMPLEXITY_SYNONYMS)

        for key, value in node.items():
            if isinstance(value, (dict, list)):
                self.walk(value, key)


def normalize_enums(
    data: Any, *, metrics: RepairMetrics | None = None
) -> tuple[Any, list[str]]:
    """Return a copy of *data* with near-miss enum values made canonical.

    Each substitution is described in the returned repair list and bumps
    ``enum_normalizations`` by one.
    """
    normalizer = _EnumNormalizer(metrics if metrics is not None else _global_metrics)
    result = copy.deepcopy(data)
    normalizer.walk(result)
    return result, normalizer.repairs


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def repair_and_parse(
    text: str,
    *,
    metrics: RepairMetrics | None = None,
    normalize: bool = True,
) -> RepairResult:
    """Parse provider output as JSON, repairing it where possible.

    Args:
        text: Raw provider output.
        metrics: Counter set to update.  Defaults to the process-wide one.
        normalize: Whether to run enum normalization on the parsed data.

    Returns:
        A :class:`RepairResult`.  ``success`` is ``False`` with a diagnostic
        in ``error`` when nothing parseable could be recovered.
    """
    metrics = metrics if metrics is not None else _global_metrics
    repairs: list[str] = []

    if not text or not text.strip():
        return RepairResult(success=False, error="Empty output: nothing to parse")

    span = extract_json(text)
    if span is None:
        return RepairResult(success=False, error="No JSON object or array found in output")
    if span != text.strip():
        repairs.append(EXTRACTED_REPAIR)
        metrics.increment("json_extractions")

    current = span
    data, ok = _try_parse(current)
    # One truncated output counts once, however many passes it takes.
    counted: set[str] = set()

    if not ok:
        for label, fixer, counters in _FIXERS:
            fixed = fixer(current)
            if fixed == current:
                continue
            repairs.append(label)
            for counter in counters:
                if counter == "truncation_repairs":
                    counted.add(counter)
                metrics.increment(counter)
            current = fixed
            data, ok = _try_parse(current)
            if ok:
                break

    if not ok:
        for candidate in _aggressive_candidates(current):
            data, ok = _try_parse(candidate)
            if ok:
                repairs.append(AGGRESSIVE_REPAIR)
                if "truncation_repairs" not in counted:
                    metrics.increment("truncation_repairs")
                break

    if not ok:
        attempted = ", ".join(repairs) if repairs else "none applicable"
        return RepairResult(
            success=False,
            repaired=False,
            repairs=repairs,
            error=f"Failed to parse JSON after repairs: {attempted}",
        )

    if normalize:
        data, enum_repairs = normalize_enums(data, metrics=metrics)
        repairs.extend(enum_repairs)

    return RepairResult(success=True, data=data, repaired=bool(repairs), repairs=repairs)
