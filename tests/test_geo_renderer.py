# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for geolens.geo_renderer: JSON-LD, document structure, escaping."""

from __future__ import annotations

import dataclasses
import json
import re

import lxml.html

from geolens import IR, IRContent, IRMetadata, IRSemantic
from geolens.geo_renderer import GENERATOR, build_json_ld, format_date, render, render_body


def _json_ld(html: str) -> dict:
    m = re.search(r'<script type="application/ld\+json">\n(.*?)\n  </script>', html, re.S)
    assert m, "JSON-LD block missing"
    return json.loads(m.group(1))


def _minimal_ir(**meta) -> IR:
    defaults = {"url": "https://example.com/", "title": "Minimal", "excerpt": "", "lang": "zh-CN"}
    defaults.update(meta)
    return IR(
        metadata=IRMetadata(**defaults),
        content=IRContent(),
        semantic=IRSemantic(main_entity_type="Article"),
    )


class TestJsonLd:
    def test_full_ir(self, sample_ir):
        data = build_json_ld(sample_ir)
        assert data["@context"] == "https://schema.org"
        assert data["@type"] == "BlogPosting"
        assert data["headline"] == "Rust & Python <together>"
        assert data["author"] == {"@type": "Person", "name": "Ada"}
        assert data["publisher"] == {"@type": "Organization", "name": "Example Blog"}
        assert data["datePublished"] == "2024-03-05T10:00:00Z"
        assert data["image"]["url"] == "https://example.com/a.png"
        assert data["image"]["width"] == 640
        assert "height" not in data["image"]
        assert data["keywords"] == "rust, python"
        assert data["wordCount"] == 180
        assert data["inLanguage"] == "en"

    def test_optional_fields_omitted(self):
        data = build_json_ld(_minimal_ir())
        for key in ("author", "publisher", "datePublished", "image", "keywords", "wordCount", "offers"):
            assert key not in data

    def test_product_offers(self):
        ir = _minimal_ir()
        ir = dataclasses.replace(ir, semantic=IRSemantic(main_entity_type="Product"))
        assert build_json_ld(ir)["offers"]["@type"] == "Offer"

    def test_script_block_is_valid_json_and_safe(self):
        ir = _minimal_ir(title="</script><script>alert(1)</script>")
        html = render(ir)
        assert "</script><script>" not in html
        assert _json_ld(html)["headline"] == "</script><script>alert(1)</script>"


class TestFormatDate:
    def test_iso_datetime(self):
        assert format_date("2024-03-05T10:00:00+08:00") == "2024-03-05"

    def test_zulu(self):
        assert format_date("2024-03-05T10:00:00Z") == "2024-03-05"

    def test_unparseable_kept(self):
        assert format_date("March 5th") == "March 5th"


class TestDocument:
    def test_structure(self, sample_ir):
        html = render(sample_ir)
        assert html.startswith("<!DOCTYPE html>\n")
        assert '<html lang="en">' in html
        assert '<article itemscope itemtype="https://schema.org/BlogPosting">' in html
        assert f'<meta name="generator" content="{GENERATOR}">' in html
        assert '<meta name="robots" content="index, follow">' in html
        assert '<meta property="og:site_name" content="Example Blog">' in html
        assert '<meta property="og:image" content="https://example.com/a.png">' in html
        assert '<meta name="keywords" content="rust, python">' in html

    def test_text_is_escaped(self, sample_ir):
        html = render(sample_ir)
        assert "<title>Rust &amp; Python &lt;together&gt;</title>" in html
        assert "<together>" not in html

    def test_no_executable_script(self, sample_ir):
        doc = lxml.html.document_fromstring(render(sample_ir))
        scripts = doc.xpath("//script")
        assert len(scripts) == 1
        assert scripts[0].get("type") == "application/ld+json"
        assert not doc.xpath("//link[@rel='stylesheet']")

    def test_sections_group_three_paragraphs(self, sample_ir):
        doc = lxml.html.document_fromstring(render(sample_ir))
        sections = doc.xpath("//main/section")
        assert len(sections) == 2
        assert len(sections[0].xpath("./p")) == 3
        assert len(sections[1].xpath("./p")) == 2
        assert sections[0].xpath("./h2/@id") == ["intro"]

    def test_trailing_paragraphs_without_headings(self):
        ir = _minimal_ir()
        ir = dataclasses.replace(ir, content=IRContent(paragraphs=("Only paragraph in the document.",)))
        doc = lxml.html.document_fromstring(render(ir))
        assert doc.xpath("//main/p/text()") == ["Only paragraph in the document."]

    def test_header_meta(self, sample_ir):
        body = render_body(sample_ir)
        assert "Author: Ada" in body
        assert '<time itemprop="datePublished" datetime="2024-03-05T10:00:00Z">Published: 2024-03-05</time>' in body

    def test_media_sections(self, sample_ir):
        doc = lxml.html.document_fromstring(render(sample_ir))
        assert doc.xpath("//section[@class='images']/figure/figcaption/text()") == ["Fig 1"]
        assert doc.xpath("//section[@class='lists']/ol/li/text()") == ["one", "two"]
        assert doc.xpath("//section[@class='videos']//iframe/@src") == ["https://www.youtube.com/embed/xyz"]

    def test_empty_sections_omitted(self):
        html = render(_minimal_ir())
        for cls in ("images", "lists", "videos"):
            assert f'class="{cls}"' not in html
        assert 'name="keywords"' not in html
        assert 'name="author"' not in html

    def test_native_video(self, sample_ir):
        from geolens import VideoItem

        video = VideoItem(src="https://cdn.example.com/v.mp4", poster="https://cdn.example.com/p.jpg")
        ir = dataclasses.replace(sample_ir, content=dataclasses.replace(sample_ir.content, videos=(video,)))
        html = render(ir)
        assert '<video controls poster="https://cdn.example.com/p.jpg">' in html
        assert '<source src="https://cdn.example.com/v.mp4">' in html

    def test_deterministic(self, sample_ir):
        assert render(sample_ir) == render(sample_ir)
