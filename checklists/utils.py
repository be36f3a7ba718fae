from datetime import datetime, timezone
import logging
import re
import uuid
from typing import Iterable, Optional, Union

from . import config

logger = logging.getLogger(__name__)

# Leading decimal number after stripping everything but digits, '.' and ','.
_PRICE_NUMBER_RE = re.compile(r"^\d*\.?\d+")
_PRICE_STRIP_RE = re.compile(r"[^\d.,]")


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Mint an opaque entity identifier (UUID4 text)."""
    return str(uuid.uuid4())


def blank_to_none(value):
    """Map empty/whitespace-only strings to None; pass everything else through."""
    if isinstance(value, str) and value.strip() == '':
        return None
    return value


def price_to_storage(price: Union[str, int, float, None]) -> Optional[str]:
    """Normalize a price for storage. Prices are opaque text in the store."""
    price = blank_to_none(price)
    if price is None:
        return None
    if isinstance(price, bool):
        # bool is an int subclass; a checkbox value is not a price
        return None
    return str(price)


def parse_price(price: Union[str, int, float, None]) -> float:
    """Best-effort numeric value of a price.

    Accepts comma- or dot-decimal text ("2,50", "2.50 EUR", "€ 3"). Anything
    that does not start with a number after cleaning contributes 0.
    """
    if price is None or isinstance(price, bool):
        return 0.0
    if isinstance(price, (int, float)):
        return float(price)
    cleaned = _PRICE_STRIP_RE.sub('', str(price)).replace(',', '.', 1)
    m = _PRICE_NUMBER_RE.match(cleaned)
    if not m:
        return 0.0
    try:
        return float(m.group(0))
    except ValueError:
        return 0.0


def sum_open_prices(todos: Iterable) -> float:
    """Sum the prices of todos that are not completed.

    Works with any objects exposing `completed` and `price` attributes
    (tree nodes or table rows).
    """
    total = 0.0
    for t in todos:
        if getattr(t, 'completed', False):
            continue
        total += parse_price(getattr(t, 'price', None))
    return total


def format_price(amount: float, suffix: str | None = None) -> str:
    """Format an amount the de-DE way: '1.234,50 €'."""
    if suffix is None:
        suffix = config.CURRENCY_SUFFIX
    # format with ',' thousands and '.' decimals, then swap the separators
    s = f"{amount:,.2f}"
    s = s.replace(',', '\x00').replace('.', ',').replace('\x00', '.')
    return s + suffix
