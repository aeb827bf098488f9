"""
MkDocs plugin for documenting Cargo feature flags.

Hooks into MkDocs' build lifecycle to read a crate's ``Cargo.toml``, extract
the ``##`` / ``#!`` comments written next to its features and optional
dependencies, and splice the rendered list into pages.  Features can be
embedded with a ``::: cargo:features`` directive or emitted as a standalone
generated page.
"""

from __future__ import annotations

import logging
import os
import re
from mkdocs.config import config_options
from mkdocs.config.base import Config as MkDocsConfig
from mkdocs.exceptions import PluginError
from mkdocs.plugins import BasePlugin
from mkdocs.structure.files import File

from .parser import ManifestError, read_manifest
from .renderer import DEFAULT_ANNOTATION, DEFAULT_LABEL, RenderConfig, render_manifest

log = logging.getLogger("mkdocs.plugins.features")

_DIRECTIVE_RE = re.compile(
    r"^(?P<indent>[ \t]*):::[ \t]+cargo:features[ \t]*\n"
    r"(?P<body>(?:(?P=indent)[ \t]+:\w+:.*\n)*)",
    re.MULTILINE,
)
_OPTION_RE = re.compile(r"^\s+:(\w+):[ \t]*(.*)$", re.MULTILINE)

_TRUE_VALUES = ("true", "yes", "1")


class FeaturesConfig(MkDocsConfig):
    manifest = config_options.Type(str, default="Cargo.toml")
    feature_label = config_options.Type(str, default=DEFAULT_LABEL)
    default_annotation = config_options.Type(str, default=DEFAULT_ANNOTATION)
    plain_comments_break_docs = config_options.Type(bool, default=False)
    page = config_options.Type(str, default="")
    page_title = config_options.Type(str, default="Feature flags")


class FeaturesPlugin(BasePlugin[FeaturesConfig]):

    def __init__(self):
        super().__init__()
        self._cache = {}
        self._config_dir = os.getcwd()

    # ── MkDocs lifecycle hooks ──

    def on_config(self, config, **kwargs):
        self._config_dir = os.path.dirname(config.get("config_file_path", "") or "") or os.getcwd()
        self._cache.clear()
        return config

    def on_files(self, files, *, config, **kwargs):
        uri = self.config["page"]
        if not uri:
            return files
        f = File.generated(config, uri, content="")
        f.edit_uri = None
        files.append(f)
        return files

    def on_page_markdown(self, markdown, *, page, config, files, **kwargs):
        src_uri = getattr(page.file, "src_uri", None) or page.file.src_path
        if self.config["page"] and src_uri == self.config["page"]:
            return self._mk_page()
        return _DIRECTIVE_RE.sub(lambda m: self._handle_directive(m, page), markdown)

    # ── Rendering ──

    def _resolve_file(self, path):
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self._config_dir, path))

    def _rcfg(self, opts=None):
        opts = opts or {}
        return RenderConfig(
            feature_label=opts.get("feature_label", self.config["feature_label"]),
            default_annotation=opts.get("default_annotation", self.config["default_annotation"]),
        )

    def _render(self, manifest, cfg, plain_breaks):
        abspath = self._resolve_file(manifest)
        key = (abspath, cfg.feature_label, cfg.default_annotation, plain_breaks)
        if key in self._cache:
            return self._cache[key]
        if not os.path.isfile(abspath):
            log.error("features: manifest not found: %s", abspath)
            return None
        text = read_manifest(abspath)
        try:
            md = render_manifest(text, cfg, plain_comments_break_docs=plain_breaks)
        except ManifestError as exc:
            raise PluginError(f"features: {abspath}: {exc}") from exc
        log.info("features: rendered %s", abspath)
        self._cache[key] = md
        return md

    def _mk_page(self):
        md = self._render(
            self.config["manifest"], self._rcfg(), self.config["plain_comments_break_docs"]
        )
        parts = [f"# {self.config['page_title']}", ""]
        if md is None:
            parts.append(f"<!-- features: manifest not found: {self.config['manifest']} -->")
        else:
            parts.append(md)
        return "\n".join(parts)

    def _handle_directive(self, match, page):
        opts = {}
        for m in _OPTION_RE.finditer(match.group("body")):
            opts[m.group(1)] = m.group(2).strip()
        manifest = opts.get("manifest") or self.config["manifest"]
        plain_breaks = self.config["plain_comments_break_docs"]
        if "plain_comments_break_docs" in opts:
            plain_breaks = opts["plain_comments_break_docs"].lower() in _TRUE_VALUES
        md = self._render(manifest, self._rcfg(opts), plain_breaks)
        if md is None:
            return f"<!-- features: manifest not found: {manifest} -->\n"
        parts = []
        if opts.get("title"):
            parts += [f"## {opts['title']}", ""]
        parts.append(md)
        return "\n".join(parts) + "\n"
