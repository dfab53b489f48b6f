"""Watch-list feed: one card per instrument, same-type signals clustered into themes."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from rerating_mcp.engine.cards import build_primary_card
from rerating_mcp.engine.models import (
    FeedCard,
    InstrumentState,
    PrimaryCard,
    SignalCategory,
    ThemedCard,
    ThemedCardItem,
)

MAX_FEED_CARDS = 5
MIN_CLUSTER_SIZE = 2

# Only these categories cluster; the rest always pass through as solo cards
THEME_BY_CATEGORY: dict[SignalCategory, str] = {
    SignalCategory.ESTIMATE_SHIFT: "🔥 Estimate Shock Day",
    SignalCategory.DIVERGENCE: "⚡ Price vs Fundamentals Divergence",
    SignalCategory.FORCED_REPRICING: "🔻 Forced Repricing",
    SignalCategory.RISK_CHANGE: "⚠️ Risk Cluster",
}


@dataclass
class FeedResult:
    cards: list[FeedCard] = field(default_factory=list)

    @property
    def all_stable(self) -> bool:
        return not self.cards

    def to_dict(self) -> dict[str, Any]:
        return {
            "cards": [card.to_dict() for card in self.cards],
            "all_stable": self.all_stable,
        }


def _themed_card(category: SignalCategory, cards: list[PrimaryCard]) -> ThemedCard:
    ranked = sorted(cards, key=lambda c: c.severity, reverse=True)
    return ThemedCard(
        category=category,
        theme=THEME_BY_CATEGORY[category],
        items=[
            ThemedCardItem(
                symbol=c.symbol,
                key_metric=c.key_metric,
                severity=c.severity,
                earnings_recap=c.earnings_recap,
            )
            for c in ranked
        ],
        tone=ranked[0].tone,
        max_severity=ranked[0].severity,
    )


def cluster_cards(cards: list[PrimaryCard], max_cards: int = MAX_FEED_CARDS) -> list[FeedCard]:
    """
    Merge two or more cards of a themed category into one ThemedCard.

    Output is sorted by effective severity (max_severity for themed
    cards) and truncated to max_cards.
    """
    by_category: dict[SignalCategory, list[PrimaryCard]] = defaultdict(list)
    for card in cards:
        by_category[card.category].append(card)

    out: list[FeedCard] = []
    for category, group in by_category.items():
        if category in THEME_BY_CATEGORY and len(group) >= MIN_CLUSTER_SIZE:
            out.append(_themed_card(category, group))
        else:
            out.extend(group)

    out.sort(key=lambda c: c.effective_severity, reverse=True)
    return out[:max_cards]


def build_feed(states: list[InstrumentState], max_cards: int = MAX_FEED_CARDS) -> FeedResult:
    """Primary card per instrument (silent instruments dropped), then clustered."""
    cards = [card for state in states if (card := build_primary_card(state)) is not None]
    return FeedResult(cards=cluster_cards(cards, max_cards))
