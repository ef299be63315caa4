from __future__ import annotations

from dataclasses import dataclass

DEFAULT_CATEGORY = "Other"
DEFAULT_ICON = "📊"


@dataclass(frozen=True)
class CategoryRule:
    keywords: tuple[str, ...]
    category: str
    icon: str


# First match wins; order matters.
CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(("politic", "gov"), "Politics", "🏛️"),
    CategoryRule(("crypto", "bitcoin"), "Crypto", "₿"),
    CategoryRule(("sport",), "Sports", "⚽"),
    CategoryRule(("tech", "sci"), "Tech & Science", "🤖"),
    CategoryRule(("econ", "fin"), "Economics", "📈"),
    CategoryRule(("climat", "weather"), "Climate", "🌡️"),
)


def classify(raw_category: str | None) -> tuple[str, str]:
    """Map a provider category string to a (display category, icon) pair."""
    normalized = (raw_category or "").strip().lower()
    if not normalized:
        return DEFAULT_CATEGORY, DEFAULT_ICON
    for rule in CATEGORY_RULES:
        if any(keyword in normalized for keyword in rule.keywords):
            return rule.category, rule.icon
    return DEFAULT_CATEGORY, DEFAULT_ICON


def display_categories() -> list[str]:
    return [rule.category for rule in CATEGORY_RULES] + [DEFAULT_CATEGORY]
