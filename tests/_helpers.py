# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test helpers for the network-facing tests."""

from __future__ import annotations

import httpx


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def html_response(body: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, text=body, headers={"content-type": "text/html; charset=utf-8"})


ARTICLE_URL = "https://news.example.com/2024/05/solar-farm"

ARTICLE_HTML = """<!DOCTYPE html>
<html lang="en" dir="ltr">
<head>
  <meta charset="utf-8">
  <title>Desert solar farm doubles output | Example News</title>
  <meta name="description" content="A desert solar farm doubled its output after a storage upgrade.">
  <meta name="author" content="Jane Reporter">
  <meta property="og:site_name" content="Example News">
  <meta property="og:title" content="Desert solar farm doubles output">
</head>
<body>
  <nav><a href="/">Home</a> <a href="/world">World</a> <a href="/tech">Tech</a></nav>
  <article>
    <h1 id="top">Desert solar farm doubles output</h1>
    <p>The solar farm outside the city doubled its daily output this spring after operators
    installed a new battery storage system that captures surplus energy during the afternoon peak.</p>
    <h2 id="storage">How the storage works</h2>
    <p>Engineers explained that the batteries charge while panels produce more power than the grid
    can absorb, and then release that energy in the evening when household demand rises sharply.</p>
    <p>The operators said the upgrade took eight months to complete and was financed by a mix of
    public grants and private investment from regional energy cooperatives across the province.</p>
    <figure>
      <img src="/images/farm.jpg" alt="Rows of solar panels" width="800" height="450">
      <figcaption>Panels at the desert site</figcaption>
    </figure>
    <ul>
      <li>Output doubled since March</li>
      <li>Storage capacity of 200 megawatt hours</li>
    </ul>
    <p>Local officials expect similar storage projects to follow at three other solar sites in the
    region, which together could supply electricity to more than two hundred thousand homes.</p>
  </article>
  <footer>Copyright Example News</footer>
</body>
</html>
"""
