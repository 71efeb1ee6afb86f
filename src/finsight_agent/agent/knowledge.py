"""In-memory keyword index of short grounding snippets."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from finsight_agent.config import KnowledgeConfig
from finsight_agent.types import KnowledgeEntry

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Keyword-overlap retrieval over a priority-ordered snippet list.

    Matching is deliberately loose: a stored keyword matches a query keyword
    when either one contains the other, ignoring case. Every match is
    returned. An entry matched by several query keywords is returned once per
    match unless `KnowledgeConfig.deduplicate` is set.
    """

    def __init__(self, config: KnowledgeConfig | None = None) -> None:
        self.config = config or KnowledgeConfig()
        self._entries: tuple[KnowledgeEntry, ...] = ()

    def __len__(self) -> int:
        return len(self._entries)

    def load(self, entries: Iterable[KnowledgeEntry]) -> None:
        """Replace the index. Higher priority first; ties keep input order."""
        ordered = sorted(entries, key=lambda entry: entry.priority, reverse=True)
        self._entries = tuple(ordered)
        logger.info(f"Loaded {len(ordered)} knowledge entries")

    def entries(self) -> list[KnowledgeEntry]:
        return list(self._entries)

    def retrieve(self, keywords: list[str]) -> list[KnowledgeEntry]:
        entries = self._entries
        matches: list[KnowledgeEntry] = []
        for keyword in keywords:
            query = keyword.strip().lower()
            if not query:
                continue
            for entry in entries:
                if _keywords_overlap(query, entry.keywords):
                    matches.append(entry)

        if not self.config.deduplicate:
            return matches

        deduped: list[KnowledgeEntry] = []
        seen: set[str] = set()
        for entry in matches:
            if entry.title in seen:
                continue
            seen.add(entry.title)
            deduped.append(entry)
        return deduped


def _keywords_overlap(query: str, keywords: frozenset[str]) -> bool:
    for keyword in keywords:
        candidate = keyword.lower()
        if not candidate:
            continue
        if candidate in query or query in candidate:
            return True
    return False


def knowledge_entry_from_record(record: dict[str, Any]) -> KnowledgeEntry:
    keywords = record.get("keywords") or []
    if not isinstance(keywords, list):
        raise ValueError(f"keywords must be a list for entry {record.get('title')!r}")
    return KnowledgeEntry(
        title=str(record["title"]),
        category=str(record.get("category", "general")),
        content=str(record.get("content", "")),
        keywords=frozenset(str(keyword) for keyword in keywords),
        priority=int(record.get("priority", 0)),
    )


def load_knowledge_file(path: str | Path) -> list[KnowledgeEntry]:
    """Read knowledge records from a JSON array, skipping inactive ones."""

    payload: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Knowledge file must be a JSON array: {path}")
    return [
        knowledge_entry_from_record(record)
        for record in payload
        if isinstance(record, dict) and record.get("is_active", True)
    ]


def default_knowledge_entries() -> list[KnowledgeEntry]:
    """Built-in seed snippets used when no knowledge file is configured."""

    return [
        knowledge_entry_from_record(record)
        for record in (
            {
                "title": "Dividends",
                "category": "fundamentals",
                "content": (
                    "A dividend is a distribution of company earnings to shareholders. "
                    "Dividend yield is the annual dividend per share divided by the share price."
                ),
                "keywords": ["dividends", "dividend yield", "payout ratio", "income"],
                "priority": 5,
            },
            {
                "title": "Price-to-Earnings Ratio",
                "category": "fundamentals",
                "content": (
                    "The P/E ratio divides the share price by earnings per share. "
                    "It compares how much investors pay for each dollar of earnings."
                ),
                "keywords": ["p/e", "pe ratio", "earnings", "valuation"],
                "priority": 5,
            },
            {
                "title": "Relative Strength Index",
                "category": "technical",
                "content": (
                    "RSI measures the speed of recent price changes on a 0-100 scale. "
                    "Readings above 70 are often called overbought and below 30 oversold."
                ),
                "keywords": ["rsi", "momentum", "overbought", "oversold"],
                "priority": 4,
            },
            {
                "title": "Moving Averages",
                "category": "technical",
                "content": (
                    "A simple moving average is the mean closing price over a window. "
                    "Crossovers of short and long averages are common trend signals."
                ),
                "keywords": ["sma", "ema", "moving average", "trend", "crossover"],
                "priority": 4,
            },
            {
                "title": "MACD",
                "category": "technical",
                "content": (
                    "MACD is the difference between the 12 and 26 period EMAs. "
                    "Its 9 period EMA is the signal line; crossovers hint at momentum shifts."
                ),
                "keywords": ["macd", "signal line", "momentum"],
                "priority": 3,
            },
            {
                "title": "Diversification",
                "category": "portfolio",
                "content": (
                    "Diversification spreads holdings across assets, sectors and regions "
                    "so that no single position dominates portfolio risk."
                ),
                "keywords": ["diversification", "portfolio", "allocation", "risk"],
                "priority": 3,
            },
            {
                "title": "Market Hours",
                "category": "market",
                "content": (
                    "US equity markets trade 9:30 AM to 4:00 PM Eastern time on weekdays, "
                    "excluding exchange holidays."
                ),
                "keywords": ["market hours", "trading hours", "market open", "session"],
                "priority": 2,
            },
            {
                "title": "Market Sentiment",
                "category": "market",
                "content": (
                    "Sentiment scores summarize the tone of recent news and social posts "
                    "about a security, from bearish to bullish."
                ),
                "keywords": ["sentiment", "news", "bullish", "bearish"],
                "priority": 2,
            },
        )
    ]
