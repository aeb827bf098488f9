"""
Markdown renderer for documented Cargo features.

Takes the Prose / FeatureDoc items collected by the parser and turns them
into a Markdown fragment: prose blocks as paragraphs, features as a bullet
list with an optional label, a default marker and the doc text.
"""

from __future__ import annotations

from .parser import FeatureDoc, Prose, parse_manifest

DEFAULT_LABEL = "Feature flag"
DEFAULT_ANNOTATION = "*(enabled by default)*"


class RenderConfig:
    def __init__(
        self,
        *,
        feature_label=DEFAULT_LABEL,
        default_annotation=DEFAULT_ANNOTATION,
    ):
        self.feature_label = feature_label
        self.default_annotation = default_annotation


def _label(name, cfg):
    label = cfg.feature_label or ""
    if "{feature}" in label:
        return label.replace("{feature}", name)
    if label:
        return f"{label} **`{name}`**"
    return f"**`{name}`**"


def _indent_body(lines):
    return [f"  {ln}" if ln.strip() else "" for ln in lines]


def render_item(item, cfg=None):
    if cfg is None:
        cfg = RenderConfig()
    if isinstance(item, Prose):
        return item.text

    head = f"* {_label(item.name, cfg)}"
    if item.is_default and cfg.default_annotation:
        head += f" {cfg.default_annotation}"
    if not item.text:
        return head
    first, *rest = item.text.split("\n")
    parts = [f"{head} — {first}"]
    parts += _indent_body(rest)
    return "\n".join(parts)


def render_items(items, cfg=None):
    if cfg is None:
        cfg = RenderConfig()
    out = []
    prev = None
    for item in items:
        text = render_item(item, cfg)
        if prev is not None:
            # Adjacent features form one list; anything else is its own block
            tight = isinstance(prev, FeatureDoc) and isinstance(item, FeatureDoc)
            out.append("\n" if tight else "\n\n")
        out.append(text)
        prev = item
    if not out:
        return ""
    return "".join(out) + "\n"


def render_manifest(text, cfg=None, *, plain_comments_break_docs=False):
    """Render the feature documentation of a manifest's text as Markdown."""
    manifest = parse_manifest(text, plain_comments_break_docs=plain_comments_break_docs)
    return render_items(manifest.items, cfg)
