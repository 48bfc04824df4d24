# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Requester classification: AI crawler/agent vs. human browser.

Pure function of one request's signals.  Three signal families, in order:

  1. User-Agent  – substring match against AI_USER_AGENTS (+ custom tokens)
  2. Explicit    – X-AI-Request / X-Bot-Type / X-AI-Agent headers and
                   ai / bot / format / geo query flags; honoured in any mode
  3. Accept      – structured-data preference without text/html; lenient
                   mode only, never for a confirmed browser UA

Strict mode (default) trusts only families 1 and 2.  The optional
suspicious-UA check (curl, wget, python-requests) marks a UA as uncertain
without classifying it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from .config import DetectorSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Token tables
# ---------------------------------------------------------------------------

AI_USER_AGENTS: tuple[str, ...] = (
    # OpenAI
    "ChatGPT-User",
    "OAI-SearchBot",
    "GPTBot",
    # Anthropic
    "ClaudeBot",
    "Claude-User",
    "claude-web",
    "anthropic-ai",
    # Google
    "Google-Extended",
    "GoogleOther",
    "Google-CloudVertexBot",
    # Microsoft
    "BingBot",
    # Perplexity
    "PerplexityBot",
    "Perplexity-User",
    # Meta
    "meta-externalagent",
    "meta-externalfetcher",
    "FacebookBot",
    "facebookexternalhit",
    # Amazon
    "Amazonbot",
    # Apple
    "Applebot",
    "Applebot-Extended",
    # ByteDance
    "Bytespider",
    # Other
    "CCBot",
    "cohere-ai",
    "ImagesiftBot",
    "Diffbot",
    "YouBot",
    "LinkedInBot",
)

SUSPICIOUS_USER_AGENTS: tuple[str, ...] = ("python-requests", "curl", "wget")

BROWSER_TOKENS: tuple[str, ...] = ("mozilla", "chrome", "safari", "firefox", "edge", "opera")

# (ua substrings, provider): first match wins
_SERVICE_TABLE: tuple[tuple[tuple[str, ...], str], ...] = (
    (("gptbot", "chatgpt", "oai-searchbot"), "OpenAI"),
    (("claude", "anthropic"), "Anthropic"),
    (("google-extended", "gemini", "bard"), "Google"),
    (("perplexity",), "Perplexity"),
    (("youbot",), "You.com"),
    (("applebot-extended",), "Apple"),
    (("bingbot",), "Microsoft"),
    (("meta-externalagent", "meta-externalfetcher"), "Meta"),
    (("amazonbot",), "Amazon"),
    (("bytespider",), "ByteDance"),
    (("ccbot",), "Common Crawl"),
    (("cohere",), "Cohere"),
)


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RequestSignals:
    """Framework-neutral view of one request: lower-cased header names, first query value per key."""

    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    url: str = ""

    @classmethod
    def from_mapping(
        cls,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, str] | None = None,
        url: str = "",
    ) -> RequestSignals:
        """Normalize raw headers; query defaults to the one parsed from *url*."""
        norm_headers = {k.lower(): v for k, v in (headers or {}).items()}
        if query is None:
            query = {}
            for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
                query.setdefault(key, value)
        return cls(headers=norm_headers, query=dict(query), url=url)

    def header(self, name: str) -> str:
        return self.headers.get(name, "")

    @property
    def user_agent(self) -> str:
        return self.header("user-agent")


@dataclass(frozen=True, slots=True)
class DetectionResult:
    is_ai: bool
    confidence: Confidence
    reasons: tuple[str, ...]
    signals_observed: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isAI": self.is_ai,
            "confidence": self.confidence.value,
            "reasons": list(self.reasons),
            "signalsObserved": dict(self.signals_observed),
        }


# ---------------------------------------------------------------------------
# Explicit flag signals
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FlagSignal:
    """An explicit opt-in marker carried by a header or query parameter."""

    name: str
    check: Callable[[RequestSignals], bool]


HEADER_SIGNALS: tuple[FlagSignal, ...] = (
    FlagSignal("x-ai-request", lambda s: s.header("x-ai-request") in ("true", "1")),
    FlagSignal("x-bot-type", lambda s: s.header("x-bot-type") in ("ai", "llm")),
    FlagSignal("x-ai-agent", lambda s: bool(s.header("x-ai-agent"))),
)

QUERY_SIGNALS: tuple[FlagSignal, ...] = (
    FlagSignal("ai=true", lambda s: s.query.get("ai") == "true"),
    FlagSignal("bot=1", lambda s: s.query.get("bot") == "1"),
    FlagSignal("format=geo", lambda s: s.query.get("format") == "geo"),
    FlagSignal("geo=1", lambda s: s.query.get("geo") == "1"),
)


def is_browser_user_agent(user_agent: str) -> bool:
    ua = user_agent.lower()
    return any(t in ua for t in BROWSER_TOKENS) and "headless" not in ua


def prefers_structured(accept: str) -> bool:
    accept = accept.lower()
    if "text/html" in accept:
        return False
    return "application/json" in accept or "application/ld+json" in accept or "text/plain" in accept


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class AIDetector:
    def __init__(self, settings: DetectorSettings | None = None) -> None:
        self._settings = settings or DetectorSettings()
        tokens = AI_USER_AGENTS + tuple(self._settings.custom_user_agents)
        self._ai_tokens = tuple(t.lower() for t in tokens if t)

    @property
    def strict(self) -> bool:
        return self._settings.strict_mode

    def match_user_agent(self, user_agent: str) -> str | None:
        """Matched AI token (lower-cased), or None."""
        ua = user_agent.lower()
        if not ua:
            return None
        return next((t for t in self._ai_tokens if t in ua), None)

    def _is_suspicious(self, user_agent: str) -> bool:
        if not self._settings.check_suspicious:
            return False
        ua = user_agent.lower()
        return any(t in ua for t in SUSPICIOUS_USER_AGENTS)

    def classify(self, signals: RequestSignals) -> DetectionResult:
        user_agent = signals.user_agent
        accept = signals.header("accept")
        reasons: list[str] = []
        confidence = Confidence.LOW
        method = "none"

        ua_token = self.match_user_agent(user_agent)
        if ua_token:
            reasons.append(f"User-Agent matches known AI service ({ua_token})")
            confidence = Confidence.HIGH
            method = "user-agent"
        elif self._is_suspicious(user_agent):
            reasons.append("User-Agent is a generic HTTP tool (unverified)")
            confidence = Confidence.MEDIUM

        headers_fired = [sig.name for sig in HEADER_SIGNALS if sig.check(signals)]
        if headers_fired:
            reasons.append(f"explicit AI header: {', '.join(headers_fired)}")
            confidence = Confidence.HIGH
        query_fired = [sig.name for sig in QUERY_SIGNALS if sig.check(signals)]
        if query_fired:
            reasons.append(f"query parameter requests AI mode: {', '.join(query_fired)}")
            confidence = Confidence.HIGH
        if headers_fired or query_fired:
            method = "explicit"

        is_ai = bool(ua_token or headers_fired or query_fired)

        if not is_ai and not self.strict and not is_browser_user_agent(user_agent) and prefers_structured(accept):
            reasons.append("Accept header prefers structured data")
            if confidence == Confidence.LOW:
                confidence = Confidence.MEDIUM
            is_ai = True
            method = "accept"

        result = DetectionResult(
            is_ai=is_ai,
            confidence=confidence,
            reasons=tuple(reasons) or ("no AI signals detected",),
            signals_observed={
                "user_agent": user_agent or "not provided",
                "accept": accept or "not provided",
                "method": method,
            },
        )
        logger.debug("Classified request is_ai=%s confidence=%s method=%s", is_ai, confidence.value, method)
        return result

    def is_ai(self, signals: RequestSignals) -> bool:
        return self.classify(signals).is_ai

    def service_of(self, signals: RequestSignals) -> str | None:
        """Provider name for an AI User-Agent, or None."""
        ua = signals.user_agent.lower()
        if not ua:
            return None
        for needles, provider in _SERVICE_TABLE:
            if any(n in ua for n in needles):
                return provider
        return None
