"""
Heuristic expense parser.

Turns a free-text line such as "rs 250 cab to office" into a ParsedExpense
using pattern matching only. It is fast and always available, so its
result is shown first and may later be replaced by the AI classifier.
"""

import re
from datetime import datetime, timedelta
from typing import List, Optional

from .models import ParsedExpense

# Matches "200", "200.50", "1,200", "₹200", "rs 200", "Rs. 200"
AMOUNT_RE = re.compile(r'(?:\brs\.?|₹)?\s*(\d+(?:,\d+)*(?:\.\d{1,2})?)\b', re.IGNORECASE)

SPLIT_RE = re.compile(r',|\n')

# Order matters: the first category with a matching keyword wins
CATEGORY_KEYWORDS = (
    ('Groceries', ('groceries', 'grocery', 'vegetables', 'fruits', 'milk', 'bread',
                   'market', 'supermarket', 'food', 'ration')),
    ('Outings', ('outings', 'outing', 'restaurant', 'cafe', 'coffee', 'tea', 'dinner',
                 'lunch', 'breakfast', 'movie', 'cinema', 'concert', 'uber', 'ola',
                 'cab', 'taxi', 'hotel', 'trip', 'party', 'fun')),
    ('BodyCare', ('body care', 'bodycare', 'personal care', 'salon', 'spa', 'haircut',
                  'gym', 'medicine', 'pharmacy', 'doctor', 'hospital', 'cream', 'soap',
                  'shampoo', 'conditioner', 'lotion', 'face wash', 'skincare', 'makeup',
                  'cosmetics', 'medical', 'health', 'toothbrush', 'paste')),
    ('Orders', ('orders', 'order', 'amazon', 'flipkart', 'meesho', 'myntra', 'zomato',
                'swiggy', 'blinkit', 'zepto', 'online', 'delivery')),
    ('Petrol', ('petrol', 'diesel', 'fuel', 'gas', 'shell', 'hp', 'station', 'pump')),
    ('Miscellaneous', ('miscellaneous', 'misc', 'gift', 'donation', 'other', 'random')),
    ('Bills', ('bills', 'bill', 'electricity', 'rent', 'wifi', 'internet', 'recharge',
               'subscription', 'mobile', 'water', 'fee', 'utility')),
    ('Savings', ('save', 'savings', 'invest', 'mutual fund', 'sip', 'deposit')),
    ('Other', ()),
)


def extract_amount(text: str):
    """Return (amount, match) for the first amount in `text`, or (None, None)."""
    match = AMOUNT_RE.search(text)
    if not match:
        return None, None
    return float(match.group(1).replace(',', '')), match


def detect_category(text: str) -> Optional[str]:
    lower_text = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lower_text for keyword in keywords):
            return category
    return None


def parse_expense_input(text: str, now: Optional[datetime] = None) -> ParsedExpense:
    """Parse one expense out of a line of text. Missing fields come back as None."""
    now = now or datetime.now()

    amount, match = extract_amount(text)

    category = detect_category(text)
    if category is None and amount:
        category = 'Miscellaneous'

    date = now
    if 'yesterday' in text.lower():
        date = now - timedelta(days=1)

    description = text
    if match:
        description = text[:match.start()] + text[match.end():]
    description = description.strip()

    if not description:
        description = f"{category} expense" if category else 'Expense'

    return ParsedExpense(
        amount=amount,
        category=category,
        description=description[0].upper() + description[1:],
        date=date,
    )


def parse_multiple_expenses(text: str, now: Optional[datetime] = None) -> List[ParsedExpense]:
    """
    Split on commas and newlines and parse each chunk.

    Chunks without an amount are dropped. If nothing survives, the whole text
    is parsed as a single expense so that a description containing a comma
    does not make the input disappear.
    """
    chunks = [chunk.strip() for chunk in SPLIT_RE.split(text)]
    results = [parse_expense_input(chunk, now) for chunk in chunks if chunk]
    results = [item for item in results if item.amount is not None]

    if not results:
        single = parse_expense_input(text, now)
        return [single] if single.amount else []

    return results
