"""
mkdocs-features — Cargo feature flag documentation for MkDocs.

Extracts the ``##`` and ``#!`` doc comments written next to feature flags
and optional dependencies in ``Cargo.toml`` and renders them as a Markdown
list inside MkDocs pages.
"""

__version__ = "0.1.0"
