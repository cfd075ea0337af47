"""Collapse the long tail of a category breakdown into one "Other" slice."""

from typing import Any

OTHER_ID = "other"
DEFAULT_THRESHOLD = 90.0
FALLBACK_MAIN = 3


def with_percentages(items: list[dict[str, Any]], total: float) -> list[dict[str, Any]]:
    return [{**item, "percentage": (item["amount"] / total) * 100 if total > 0 else 0} for item in items]


def bucket_categories(
    items: list[dict[str, Any]], total: float, threshold: float = DEFAULT_THRESHOLD
) -> list[dict[str, Any]]:
    """Keep the biggest slices until ``threshold`` percent is covered.

    Items must carry ``amount``; percentages are recomputed against ``total``.
    The amounts of the returned entries always sum to the input amounts.
    """
    ordered = sorted(with_percentages(items, total), key=lambda i: i["amount"], reverse=True)
    main: list[dict[str, Any]] = []
    other: list[dict[str, Any]] = []
    cumulative = 0.0
    for item in ordered:
        if cumulative < threshold and len(main) < len(ordered) - 1:
            main.append(item)
            cumulative += item["percentage"]
        else:
            other.append(item)

    if not main and other:
        main, other = other[:FALLBACK_MAIN], other[FALLBACK_MAIN:]

    if len(other) > 1:
        other_amount = sum(i["amount"] for i in other)
        other_percentage = sum(i["percentage"] for i in other)
        if other_amount > 1 and other_percentage > 1:
            return main + [
                {
                    "categoryId": OTHER_ID,
                    "categoryName": f"Other ({len(other)} categories)",
                    "isOther": True,
                    "amount": other_amount,
                    "percentage": other_percentage,
                    "transactionCount": sum(i.get("transactionCount", 0) for i in other),
                    "otherCategories": other,
                }
            ]
    return main + other


def bucket_breakdown(breakdown: list[dict[str, Any]], total: float) -> list[dict[str, Any]]:
    """Bucket the top level, then each parent's subcategories against the subcategory total."""
    grouped = []
    for entry in bucket_categories(breakdown, total):
        subcategories = entry.get("subcategories")
        if subcategories:
            child_total = sum(s["amount"] for s in subcategories)
            entry = {**entry, "subcategories": bucket_categories(subcategories, child_total)}
        grouped.append(entry)
    return grouped
