#!/usr/bin/env python3
"""
Render the feature documentation of a Cargo manifest to Markdown.

Usage:
    python -m mkdocs_features.cli Cargo.toml
    python -m mkdocs_features.cli crates/foo/Cargo.toml --feature-label ""
    python -m mkdocs_features.cli Cargo.toml --output docs/features.md
"""

import argparse
import os
import sys

from .parser import ManifestError, read_manifest
from .renderer import DEFAULT_ANNOTATION, DEFAULT_LABEL, RenderConfig, render_manifest


def main(argv=None):
    p = argparse.ArgumentParser(description="Render documented Cargo features as Markdown")
    p.add_argument("manifest", help="Path to Cargo.toml")
    p.add_argument(
        "--feature-label",
        default=DEFAULT_LABEL,
        help="Label before each feature name, may contain {feature} (default: %(default)s)",
    )
    p.add_argument(
        "--default-annotation",
        default=DEFAULT_ANNOTATION,
        help="Marker appended to features enabled by default",
    )
    p.add_argument(
        "--plain-comments-break-docs",
        action="store_true",
        help="Drop ## docs separated from their feature by a plain # comment",
    )
    p.add_argument("-o", "--output", help="Write to this file instead of stdout")
    args = p.parse_args(argv)

    if not os.path.isfile(args.manifest):
        print(f"error: {args.manifest} not found", file=sys.stderr)
        return 1

    cfg = RenderConfig(
        feature_label=args.feature_label, default_annotation=args.default_annotation
    )
    try:
        md = render_manifest(
            read_manifest(args.manifest),
            cfg,
            plain_comments_break_docs=args.plain_comments_break_docs,
        )
    except ManifestError as exc:
        print(f"error: {args.manifest}: {exc}", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(md)
    else:
        sys.stdout.write(md)
    return 0


if __name__ == "__main__":
    sys.exit(main())
