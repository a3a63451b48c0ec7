from __future__ import annotations

from ..models import Category

_CATEGORY_GUIDE = {
    Category.FRUITS: "Fresh, dried, or processed fruits",
    Category.VEGETABLES: "Fresh, frozen, or canned vegetables",
    Category.DAIRY: "Milk, cheese, yogurt, butter, cream",
    Category.MEAT: "All meats, fish, and poultry",
    Category.BAKERY: "Bread, pastries, cakes",
    Category.BEVERAGES: "Drinks, water, juice, soda",
    Category.SNACKS: "Chips, crackers, nuts",
    Category.CEREALS: "Breakfast cereals, oats, muesli, rice, pasta",
    Category.SWEETS: "Candy, chocolate, desserts",
    Category.OILS: "Cooking oils, vinegar, dressings",
    Category.OTHER: "Items that don't fit the categories above",
}


def _category_lines() -> str:
    return "\n".join(f"- {c.value}: {_CATEGORY_GUIDE[c]}" for c in Category)


RECEIPT_EXTRACTION_PROMPT = f"""\
Extract every purchased item from the supermarket receipt text.
Respond ONLY with a markdown table with the columns: Name | Category | Price

Rules:
- Name is the product name as printed, without prices or tax letters.
- Price is the line total in EUR with two decimals, for example 2.49.
- Skip totals, payment lines, deposits returned, tax lines and the store address.
- Category MUST be exactly one of:
{_category_lines()}
"""

CATEGORY_CLASSIFICATION_PROMPT = f"""\
You are a product categorizer. Given a list of product names or descriptions,
return ONLY valid JSON with categorized items.

IMPORTANT: You MUST ONLY use these exact categories:
{_category_lines()}

Required JSON format:
{{
  "items": [
    {{"keyword": "product name", "category": "one of the categories above"}}
  ]
}}
"""
