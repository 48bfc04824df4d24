# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""GEO renderer: IR -> semantic HTML5 document with schema.org microdata + JSON-LD.

Pure and deterministic: equal IRs give byte-identical output, nothing here
reads the clock, the network or the source DOM.  Every value taken from the
IR passes through ``escape_html`` (text and attributes) or
``json_for_script`` (the JSON-LD block).  The document carries an inline
stylesheet only: no external resources, no executable script.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from . import IR, ImageItem, VideoItem
from .sanitizer import escape_html as esc
from .sanitizer import json_for_script

GENERATOR = "GeoLens GEO Renderer 1.0"
SCHEMA_ORG = "https://schema.org"
_EMBED_HOSTS = ("youtube.com", "vimeo.com")
_PARAGRAPHS_PER_SECTION = 3

_STYLE = """\
    body {
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, "Helvetica Neue", Arial, sans-serif;
      line-height: 1.6;
      max-width: 800px;
      margin: 0 auto;
      padding: 20px;
      color: #333;
    }
    header { margin-bottom: 2rem; }
    h1 { font-size: 2rem; margin-bottom: 0.5rem; }
    .meta { color: #666; font-size: 0.9rem; margin-bottom: 1rem; }
    .excerpt { font-size: 1.1rem; color: #555; font-style: italic; }
    section { margin: 2rem 0; }
    img { max-width: 100%; height: auto; }
    figure { margin: 1.5rem 0; }
    figcaption { color: #666; font-size: 0.9rem; margin-top: 0.5rem; }
    .video-embed { position: relative; padding-bottom: 56.25%; height: 0; overflow: hidden; }
    .video-embed iframe { position: absolute; top: 0; left: 0; width: 100%; height: 100%; }"""


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------


def build_json_ld(ir: IR) -> dict[str, Any]:
    meta, semantic = ir.metadata, ir.semantic
    data: dict[str, Any] = {
        "@context": SCHEMA_ORG,
        "@type": semantic.main_entity_type,
        "headline": meta.title,
        "description": meta.excerpt,
        "url": meta.url,
        "inLanguage": meta.lang,
    }
    if meta.author:
        data["author"] = {"@type": "Person", "name": meta.author}
    if meta.publish_date:
        data["datePublished"] = meta.publish_date
    if meta.site_name:
        data["publisher"] = {"@type": "Organization", "name": meta.site_name}
    if ir.content.images:
        first = ir.content.images[0]
        image: dict[str, Any] = {
            "@type": "ImageObject",
            "url": first.src,
            "caption": first.alt or first.caption,
        }
        if first.width:
            image["width"] = first.width
        if first.height:
            image["height"] = first.height
        data["image"] = image
    if semantic.keywords:
        data["keywords"] = ", ".join(semantic.keywords)
    if semantic.word_count:
        data["wordCount"] = semantic.word_count
    if semantic.main_entity_type == "Product":
        data["offers"] = {"@type": "Offer", "availability": "https://schema.org/InStock"}
    return data


# ---------------------------------------------------------------------------
# Body sections
# ---------------------------------------------------------------------------


def format_date(value: str) -> str:
    """Display form of a publish date: ISO ``YYYY-MM-DD`` when parseable, else as given."""
    try:
        return datetime.fromisoformat(value.strip()).date().isoformat()
    except ValueError:
        return value


def _header(ir: IR) -> list[str]:
    meta = ir.metadata
    lines = [
        "    <header>",
        f'      <h1 itemprop="headline">{esc(meta.title)}</h1>',
    ]
    meta_parts: list[str] = []
    if meta.author:
        meta_parts.append(
            '<span itemprop="author" itemscope itemtype="https://schema.org/Person">'
            f'<meta itemprop="name" content="{esc(meta.author)}">'
            f"Author: {esc(meta.author)}</span>"
        )
    if meta.publish_date:
        meta_parts.append(
            f'<time itemprop="datePublished" datetime="{esc(meta.publish_date)}">'
            f"Published: {esc(format_date(meta.publish_date))}</time>"
        )
    if meta_parts:
        lines.append(f'      <div class="meta">{" · ".join(meta_parts)}</div>')
    if meta.excerpt:
        lines.append(f'      <p itemprop="description" class="excerpt">{esc(meta.excerpt)}</p>')
    lines.append("    </header>")
    return lines


def _main(ir: IR) -> list[str]:
    """Each heading opens a section holding up to three following paragraphs."""
    paragraphs = ir.content.paragraphs
    lines = ['    <main itemprop="articleBody">']
    idx = 0
    for heading in ir.content.headings:
        id_attr = f' id="{esc(heading.id)}"' if heading.id else ""
        lines.append("      <section>")
        lines.append(f"        <h{heading.level}{id_attr}>{esc(heading.text)}</h{heading.level}>")
        for text in paragraphs[idx : idx + _PARAGRAPHS_PER_SECTION]:
            lines.append(f"        <p>{esc(text)}</p>")
        idx = min(idx + _PARAGRAPHS_PER_SECTION, len(paragraphs))
        lines.append("      </section>")
    lines.extend(f"      <p>{esc(text)}</p>" for text in paragraphs[idx:])
    lines.append("    </main>")
    return lines


def _figure(image: ImageItem) -> list[str]:
    attrs = [f'src="{esc(image.src)}"', f'alt="{esc(image.alt)}"', 'itemprop="url contentUrl"']
    if image.width:
        attrs.append(f'width="{image.width}"')
    if image.height:
        attrs.append(f'height="{image.height}"')
    lines = [
        '      <figure itemprop="image" itemscope itemtype="https://schema.org/ImageObject">',
        f"        <img {' '.join(attrs)}>",
    ]
    if image.caption:
        lines.append(f'        <figcaption itemprop="caption">{esc(image.caption)}</figcaption>')
    lines.append("      </figure>")
    return lines


def _images(ir: IR) -> list[str]:
    lines = ['    <section class="images">']
    for image in ir.content.images:
        lines.extend(_figure(image))
    lines.append("    </section>")
    return lines


def _lists(ir: IR) -> list[str]:
    lines = ['    <section class="lists">']
    for block in ir.content.lists:
        tag = "ol" if block.type == "ol" else "ul"
        lines.append(f"      <{tag}>")
        lines.extend(f"        <li>{esc(item)}</li>" for item in block.items)
        lines.append(f"      </{tag}>")
    lines.append("    </section>")
    return lines


def _video(video: VideoItem) -> list[str]:
    if any(host in video.src for host in _EMBED_HOSTS):
        lines = [
            '      <div class="video-embed">',
            f'        <iframe src="{esc(video.src)}" allowfullscreen></iframe>',
        ]
        if video.caption:
            lines.append(f"        <p>{esc(video.caption)}</p>")
        lines.append("      </div>")
        return lines
    poster = f' poster="{esc(video.poster)}"' if video.poster else ""
    lines = [
        f"      <video controls{poster}>",
        f'        <source src="{esc(video.src)}">',
        "      </video>",
    ]
    if video.caption:
        lines.append(f"      <p>{esc(video.caption)}</p>")
    return lines


def _videos(ir: IR) -> list[str]:
    lines = ['    <section class="videos">']
    for video in ir.content.videos:
        lines.extend(_video(video))
    lines.append("    </section>")
    return lines


def render_body(ir: IR) -> str:
    blocks = [_header(ir), _main(ir)]
    if ir.content.images:
        blocks.append(_images(ir))
    if ir.content.lists:
        blocks.append(_lists(ir))
    if ir.content.videos:
        blocks.append(_videos(ir))
    return "\n\n".join("\n".join(block) for block in blocks)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


def _head_meta(ir: IR) -> list[str]:
    meta = ir.metadata
    lines = [f'  <meta name="description" content="{esc(meta.excerpt)}">']
    if meta.author:
        lines.append(f'  <meta name="author" content="{esc(meta.author)}">')
    if ir.semantic.keywords:
        lines.append(f'  <meta name="keywords" content="{esc(", ".join(ir.semantic.keywords))}">')
    lines += [
        f'  <meta property="og:title" content="{esc(meta.title)}">',
        f'  <meta property="og:description" content="{esc(meta.excerpt)}">',
        f'  <meta property="og:url" content="{esc(meta.url)}">',
    ]
    if ir.content.images:
        lines.append(f'  <meta property="og:image" content="{esc(ir.content.images[0].src)}">')
    if meta.site_name:
        lines.append(f'  <meta property="og:site_name" content="{esc(meta.site_name)}">')
    return lines


def render(ir: IR) -> str:
    """Render *ir* as a complete GEO HTML document."""
    meta = ir.metadata
    entity = esc(ir.semantic.main_entity_type)
    head = [
        "<!DOCTYPE html>",
        f'<html lang="{esc(meta.lang)}">',
        "<head>",
        '  <meta charset="UTF-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"  <title>{esc(meta.title)}</title>",
        *_head_meta(ir),
        '  <script type="application/ld+json">',
        json_for_script(build_json_ld(ir)),
        "  </script>",
        "  <style>",
        _STYLE,
        "  </style>",
        "</head>",
        "<body>",
        f'  <article itemscope itemtype="{SCHEMA_ORG}/{entity}">',
        f'    <meta itemprop="url" content="{esc(meta.url)}">',
    ]
    if meta.site_name:
        head.append(f'    <meta itemprop="publisher" content="{esc(meta.site_name)}">')
    tail = [
        "  </article>",
        f'  <meta name="generator" content="{GENERATOR}">',
        '  <meta name="robots" content="index, follow">',
        "</body>",
        "</html>",
    ]
    return "\n".join([*head, "", render_body(ir), *tail]) + "\n"
