"""Code-intent classification for provider selection.

Pure heuristics, no I/O. Each signal triggers independently and adds
its weight to the confidence, which is clipped to [0, 1]:

- fenced code block (or inline code span)
- programming constructs (``def foo``, ``class Foo``, ``import x``, ...)
- programming vocabulary, weighted by density relative to prose
- code-style indentation across several lines
- symbol density (braces, semicolons, operators)
"""

import re
from dataclasses import dataclass

CODE_KEYWORDS: tuple[str, ...] = (
    "code",
    "programming",
    "function",
    "variable",
    "algorithm",
    "debug",
    "syntax",
    "method",
    "class",
    "object",
    "array",
    "loop",
    "conditional",
    "javascript",
    "python",
    "java",
    "c++",
    "typescript",
    "react",
    "node",
    "api",
    "database",
    "sql",
    "html",
    "css",
    "git",
    "github",
    "repository",
    "framework",
    "library",
    "package",
    "import",
    "export",
    "compile",
    "runtime",
    "exception",
    "stack trace",
    "callback",
    "promise",
    "async",
    "await",
    "closure",
    "scope",
    "hoisting",
    "prototype",
)

_KEYWORD_RE = re.compile(
    "|".join(rf"(?<!\w){re.escape(k)}(?!\w)" for k in CODE_KEYWORDS),
    re.IGNORECASE,
)
_FENCE_RE = re.compile(r"```")
_INLINE_CODE_RE = re.compile(r"`[^`\n]+`")
_CONSTRUCT_RE = re.compile(
    r"\b(?:"
    r"def\s+\w+\s*\("
    r"|function\s+\w+\s*\("
    r"|class\s+\w+\s*[:({]"
    r"|import\s+[\w.{]+"
    r"|from\s+[\w.]+\s+import\b"
    r"|(?:const|let|var)\s+\w+\s*="
    r"|public\s+(?:static\s+)?(?:class|void|int)\b"
    r"|private\s+\w+"
    r"|SELECT\s+.+\s+FROM\b"
    r"|return\s+[^.\n]*;"
    r")|#include\s*<",
)
_INDENTED_LINE_RE = re.compile(r"^(?: {2,}|\t)\S", re.MULTILINE)
_SYMBOLS = frozenset("{}()[];=<>+-*/&|!%")

# Signal weights
FENCE_WEIGHT = 0.35
INLINE_CODE_WEIGHT = 0.1
CONSTRUCT_WEIGHT = 0.4
KEYWORD_DENSITY_WEIGHT = 0.5
KEYWORD_COUNT_BONUS = 0.2
INDENTATION_WEIGHT = 0.15
SYMBOL_WEIGHT = 0.15

MIN_KEYWORDS_FOR_BONUS = 3
MIN_INDENTED_LINES = 2
SYMBOL_DENSITY_THRESHOLD = 0.06
IS_CODE_THRESHOLD = 0.3


@dataclass(frozen=True)
class CodeIntent:
    """Classifier verdict for one prompt."""

    is_code: bool
    confidence: float
    keywords: tuple[str, ...] = ()
    signals: tuple[str, ...] = ()


def classify(prompt: str, system_prompt: str | None = None) -> CodeIntent:
    """Decide whether a prompt is primarily a programming request.

    The system prompt is scanned together with the user prompt. Empty
    or whitespace-only input yields ``CodeIntent(False, 0.0)``.
    """
    text = "\n".join(part for part in (system_prompt, prompt) if part)
    if not text.strip():
        return CodeIntent(is_code=False, confidence=0.0)

    confidence = 0.0
    signals: list[str] = []

    if _FENCE_RE.search(text):
        confidence += FENCE_WEIGHT
        signals.append("fenced_block")
    elif _INLINE_CODE_RE.search(text):
        confidence += INLINE_CODE_WEIGHT
        signals.append("inline_code")

    if _CONSTRUCT_RE.search(text):
        confidence += CONSTRUCT_WEIGHT
        signals.append("constructs")

    keywords = tuple(
        dict.fromkeys(m.group(0).lower() for m in _KEYWORD_RE.finditer(text))
    )
    if keywords:
        word_count = len(text.split())
        confidence += KEYWORD_DENSITY_WEIGHT * len(keywords) / word_count
        signals.append("keywords")
        if len(keywords) >= MIN_KEYWORDS_FOR_BONUS:
            confidence += KEYWORD_COUNT_BONUS

    if len(_INDENTED_LINE_RE.findall(text)) >= MIN_INDENTED_LINES:
        confidence += INDENTATION_WEIGHT
        signals.append("indentation")

    if _symbol_density(text) >= SYMBOL_DENSITY_THRESHOLD:
        confidence += SYMBOL_WEIGHT
        signals.append("symbols")

    confidence = round(min(max(confidence, 0.0), 1.0), 4)
    return CodeIntent(
        is_code=confidence > IS_CODE_THRESHOLD,
        confidence=confidence,
        keywords=keywords,
        signals=tuple(signals),
    )


def _symbol_density(text: str) -> float:
    """Share of non-whitespace characters that are code punctuation."""
    chars = [c for c in text if not c.isspace()]
    if not chars:
        return 0.0
    return sum(1 for c in chars if c in _SYMBOLS) / len(chars)
