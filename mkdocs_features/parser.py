"""
Manifest scanner for Cargo feature documentation.

Reads the text of a ``Cargo.toml`` and collects the ``##`` / ``#!`` doc
comments written next to feature flags and optional dependencies.

This is deliberately not a TOML parser.  It only needs to know where
logical lines start and end, which table is active, and which comments sit
directly on top of which declaration:

  - raw lines are merged into logical lines when a multi-line string or
    array is still open at end of line
  - each logical line is classified (header, entry, comment, blank)
  - a single forward pass binds inner comments to the next entry and turns
    outer comments into prose
  - the ``default`` feature is expanded to find everything enabled by default
"""

from __future__ import annotations

import dataclasses
import os
import re
import textwrap
from dataclasses import dataclass, field
from enum import Enum, auto


class ManifestError(ValueError):
    """Fatal structural problem in the manifest, positioned on a line."""

    def __init__(self, line, message):
        super().__init__(f"line {line}: {message}")
        self.line = line
        self.message = message


class LineKind(Enum):
    TABLE_HEADER = auto()
    ENTRY = auto()
    OUTER_COMMENT = auto()
    INNER_COMMENT = auto()
    PLAIN_COMMENT = auto()
    BLANK = auto()


@dataclass(frozen=True)
class RawLine:
    number: int
    text: str


@dataclass(frozen=True)
class LogicalLine:
    raw: tuple[RawLine, ...]
    code: str
    masked: str

    @property
    def first(self):
        return self.raw[0].number

    @property
    def last(self):
        return self.raw[-1].number

    @property
    def text(self):
        return "\n".join(r.text for r in self.raw)


@dataclass(frozen=True)
class ClassifiedLine:
    kind: LineKind
    line: LogicalLine
    path: tuple[str, ...] = ()
    key: str = ""
    value: str = ""
    text: str = ""


@dataclass(frozen=True)
class Prose:
    text: str
    line: int = 0


@dataclass(frozen=True)
class FeatureDoc:
    name: str
    text: str = ""
    line: int = 0
    table: tuple[str, ...] = ("features",)
    is_default: bool = False


@dataclass(frozen=True)
class Manifest:
    items: tuple = ()
    features: dict[str, list[str]] = field(default_factory=dict)
    defaults: frozenset[str] = frozenset()

    @property
    def feature_docs(self):
        return [i for i in self.items if isinstance(i, FeatureDoc)]


# ── lexing ──


@dataclass
class _LexState:
    depth: int = 0
    quote: str | None = None

    @property
    def is_open(self):
        return self.depth > 0 or self.quote in ('"""', "'''")


def _lex(text, state):
    """Scan one physical line.

    Returns ``(code, masked)``: the line with any trailing comment removed,
    and the same text with string bodies replaced by ``_`` so structural
    characters are only visible outside of strings.  ``state`` carries open
    multi-line strings and bracket depth over to the next line.
    """
    code = []
    masked = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if state.quote is not None:
            q = state.quote
            if q[0] == '"' and ch == "\\":
                esc = text[i : i + 2]
                code.append(esc)
                masked.append("_" * len(esc))
                i += len(esc)
                continue
            if text.startswith(q, i):
                code.append(q)
                masked.append(q)
                i += len(q)
                state.quote = None
                continue
            code.append(ch)
            masked.append("_")
            i += 1
            continue
        if ch == "#":
            break
        if text.startswith('"""', i) or text.startswith("'''", i):
            state.quote = text[i : i + 3]
        elif ch in "\"'":
            state.quote = ch
        elif ch in "[{":
            state.depth += 1
        elif ch in "]}" and state.depth:
            state.depth -= 1
        if state.quote is not None and state.quote[0] == ch:
            code.append(state.quote)
            masked.append(state.quote)
            i += len(state.quote)
            continue
        code.append(ch)
        masked.append(ch)
        i += 1
    # Single-line strings cannot continue past the end of the line
    if state.quote in ('"', "'"):
        state.quote = None
    return "".join(code), "".join(masked)


def _unquote(text):
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text


def _split_dotted(code, masked):
    """Split a dotted TOML key/path on dots that sit outside quotes."""
    parts = []
    start = 0
    for i, ch in enumerate(masked):
        if ch == ".":
            parts.append(_unquote(code[start:i]))
            start = i + 1
    parts.append(_unquote(code[start:]))
    return tuple(parts)


# ── continuation joining ──


def split_raw_lines(text):
    return [RawLine(i, line) for i, line in enumerate(text.splitlines(), start=1)]


def join_continuations(raw_lines):
    """Merge raw lines that belong to one multi-line string or array value."""
    out = []
    i = 0
    while i < len(raw_lines):
        raw = raw_lines[i]
        stripped = raw.text.strip()
        i += 1
        if not stripped or stripped.startswith(("#", "[")):
            code, masked = _lex(raw.text, _LexState())
            out.append(LogicalLine((raw,), code, masked))
            continue

        state = _LexState()
        group = [raw]
        code, masked = _lex(raw.text, state)
        codes, maskeds = [code], [masked]
        while state.is_open:
            if i >= len(raw_lines):
                raise ManifestError(
                    raw.number, f"Unterminated multi-line value starting at line {raw.number}"
                )
            nxt = raw_lines[i]
            i += 1
            group.append(nxt)
            code, masked = _lex(nxt.text, state)
            codes.append(code)
            maskeds.append(masked)
        out.append(LogicalLine(tuple(group), "\n".join(codes), "\n".join(maskeds)))
    return out


# ── classification ──


def _doc_comment(stripped, prefix):
    """Return the comment body if ``stripped`` is a ``prefix`` doc comment."""
    if not stripped.startswith(prefix):
        return None
    rest = stripped[len(prefix) :]
    if rest and not rest.startswith(" "):
        return None
    return rest[1:]


def classify_line(line):
    stripped = line.text.strip()
    if not stripped:
        return ClassifiedLine(LineKind.BLANK, line)

    if stripped.startswith("#"):
        body = line.text.lstrip().rstrip()
        text = _doc_comment(body, "#!")
        if text is not None:
            return ClassifiedLine(LineKind.OUTER_COMMENT, line, text=text)
        text = _doc_comment(body, "##")
        if text is not None:
            return ClassifiedLine(LineKind.INNER_COMMENT, line, text=text)
        return ClassifiedLine(LineKind.PLAIN_COMMENT, line)

    code = line.code.strip()
    masked = line.masked.strip()
    if stripped.startswith("["):
        depth = 2 if masked.startswith("[[") else 1
        if not masked.endswith("]" * depth) or len(masked) <= 2 * depth:
            raise ManifestError(line.first, f"Parse error while parsing line: {stripped}")
        path = _split_dotted(code[depth:-depth], masked[depth:-depth])
        return ClassifiedLine(LineKind.TABLE_HEADER, line, path=path)

    eq = line.masked.find("=")
    if eq < 0:
        raise ManifestError(line.first, f"Parse error while parsing line: {stripped}")
    key = _unquote(line.code[:eq])
    return ClassifiedLine(LineKind.ENTRY, line, key=key, value=line.code[eq + 1 :].strip())


def classify_lines(text):
    return [classify_line(ln) for ln in join_continuations(split_raw_lines(text))]


# ── scope tracking ──


class Scope:
    """Currently active table path."""

    def __init__(self):
        self.path = ()

    def enter(self, path):
        self.path = tuple(p.strip() for p in path)

    @property
    def is_features(self):
        return self.path == ("features",)

    @property
    def is_dependencies(self):
        return bool(self.path) and self.path[-1].endswith("dependencies")

    @property
    def dependency_table(self):
        """Dependency name for ``[...dependencies.<name>]`` tables, else None."""
        if len(self.path) >= 2 and self.path[-2].endswith("dependencies"):
            return self.path[-1]
        return None


# ── default resolution ──

_STRING_RE = re.compile(r""""((?:[^"\\]|\\.)*)"|'([^']*)'""")
_OPTIONAL_RE = re.compile(r"(?<![\w-])optional\s*=\s*true\b")


def parse_feature_refs(value):
    """Parse a TOML array of strings, returning None if it is not one."""
    value = value.strip()
    if not (value.startswith("[") and value.endswith("]")):
        return None
    refs = []
    for m in _STRING_RE.finditer(value):
        ref = m.group(1) if m.group(1) is not None else m.group(2)
        ref = ref.strip()
        if ref:
            refs.append(ref)
    return refs


def _is_dependency_ref(ref):
    return "/" in ref or ref.startswith("dep:")


def resolve_defaults(features):
    """Names reachable from the ``default`` feature.

    ``pkg/feat``, ``pkg?/feat`` and ``dep:pkg`` references are recorded but
    not followed; they do not name a local feature.
    """
    reachable = set()
    stack = list(reversed(features.get("default", [])))
    while stack:
        ref = stack.pop()
        if ref in reachable:
            continue
        reachable.add(ref)
        if _is_dependency_ref(ref):
            continue
        stack.extend(reversed(features.get(ref, [])))
    return frozenset(reachable)


# ── comment binding ──


def _block_text(lines):
    text = textwrap.dedent("\n".join(lines))
    return text.strip("\n")


@dataclass
class _DependencyTable:
    name: str
    line: int
    path: tuple[str, ...]
    doc: str | None
    index: int
    optional: bool = False


class _Binder:
    def __init__(self, plain_comments_break_docs=False):
        self.plain_comments_break_docs = plain_comments_break_docs
        self.scope = Scope()
        self.items = []
        self.features = {}
        self.pending = []
        self.prose = []
        self.prose_line = 0
        self.dep_table = None

    def _flush_prose(self):
        text = "\n".join(self.prose).strip("\n")
        if text:
            self.items.append(Prose(text, self.prose_line))
        self.prose = []

    def _take_doc(self):
        if not self.pending:
            return None
        doc = _block_text(self.pending)
        self.pending = []
        return doc

    def _close_dep_table(self):
        tbl = self.dep_table
        self.dep_table = None
        if tbl is None:
            return
        if not tbl.optional:
            if tbl.doc is not None:
                raise ManifestError(
                    tbl.line, f"Dependency {tbl.name} is not an optional dependency"
                )
            return
        self.items.insert(tbl.index, FeatureDoc(tbl.name, tbl.doc or "", tbl.line, tbl.path))

    def feed(self, cl):
        if cl.kind is LineKind.OUTER_COMMENT:
            if not self.prose:
                self.prose_line = cl.line.first
            self.prose.append(cl.text)
            self.pending = []
            return
        self._flush_prose()

        if cl.kind is LineKind.INNER_COMMENT:
            self.pending.append(cl.text)
        elif cl.kind is LineKind.BLANK:
            self.pending = []
        elif cl.kind is LineKind.PLAIN_COMMENT:
            if self.plain_comments_break_docs:
                self.pending = []
        elif cl.kind is LineKind.TABLE_HEADER:
            self._header(cl)
        elif cl.kind is LineKind.ENTRY:
            self._entry(cl)

    def _header(self, cl):
        self._close_dep_table()
        self.scope.enter(cl.path)
        doc = self._take_doc()
        name = self.scope.dependency_table
        if name is not None:
            self.dep_table = _DependencyTable(
                name, cl.line.first, self.scope.path, doc, len(self.items)
            )

    def _entry(self, cl):
        doc = self._take_doc()
        line = cl.line.first
        if self.scope.is_features:
            if cl.key in self.features:
                raise ManifestError(line, f"Duplicate feature {cl.key}")
            refs = parse_feature_refs(cl.value)
            if refs is None:
                if cl.key == "default":
                    raise ManifestError(line, "Parse error while parsing feature default")
                refs = []
            self.features[cl.key] = refs
            if cl.key != "default" or doc is not None:
                self.items.append(FeatureDoc(cl.key, doc or "", line, self.scope.path))
        elif self.dep_table is not None:
            if cl.key == "optional" and cl.value.startswith("true"):
                self.dep_table.optional = True
            if doc is not None:
                raise ManifestError(line, f"Comment cannot be associated with a feature: {cl.key}")
        elif self.scope.is_dependencies:
            masked_value = cl.line.masked[cl.line.masked.find("=") + 1 :]
            if _OPTIONAL_RE.search(masked_value):
                self.items.append(FeatureDoc(cl.key, doc or "", line, self.scope.path))
            elif doc is not None:
                raise ManifestError(line, f"Dependency {cl.key} is not an optional dependency")
        elif doc is not None:
            raise ManifestError(line, f"Comment cannot be associated with a feature: {cl.key}")

    def finish(self):
        self._flush_prose()
        self._close_dep_table()
        self.pending = []


def bind_comments(classified, *, plain_comments_break_docs=False):
    """Bind doc comments to declarations in one forward pass.

    Returns ``(items, features)`` where ``items`` are Prose / FeatureDoc in
    source order and ``features`` maps each ``[features]`` entry to its
    referenced names.
    """
    binder = _Binder(plain_comments_break_docs)
    for cl in classified:
        binder.feed(cl)
    binder.finish()
    return binder.items, binder.features


def parse_manifest(text, *, plain_comments_break_docs=False):
    items, features = bind_comments(
        classify_lines(text), plain_comments_break_docs=plain_comments_break_docs
    )
    defaults = resolve_defaults(features)

    # Optional deps only referenced as "dep:name" have no implicit feature
    dep_only = {
        ref[len("dep:") :] for refs in features.values() for ref in refs if ref.startswith("dep:")
    }
    out = []
    for item in items:
        if isinstance(item, FeatureDoc):
            if item.table != ("features",) and item.name in dep_only and not item.text:
                continue
            if item.name in defaults:
                item = dataclasses.replace(item, is_default=True)
        out.append(item)
    return Manifest(tuple(out), features, defaults)


# ── loading ──

_DOC_MARKERS = ("\n##", "\n#!")


def _has_doc_comments(text):
    return any(m in text for m in _DOC_MARKERS) or text.startswith(("##", "#!"))


def read_manifest(path):
    """Read a manifest, preferring ``<path>.orig`` when ``path`` has no docs.

    Published crates ship a normalized ``Cargo.toml`` with every comment
    stripped; the author's file survives next to it as ``Cargo.toml.orig``.
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if _has_doc_comments(text):
        return text
    orig = os.fspath(path) + ".orig"
    if os.path.isfile(orig):
        with open(orig, "r", encoding="utf-8") as f:
            orig_text = f.read()
        if _has_doc_comments(orig_text):
            return orig_text
    return text
