from typing import Optional


def parse_tick(raw) -> tuple[float, Optional[float]]:
    """Flexible tick parser — handles Deriv ticks, candle dicts, lists, numbers or objects.

    Returns ``(price, timestamp)``; timestamp is None when the payload has none.
    """
    if isinstance(raw, (int, float)):
        return float(raw), None
    if isinstance(raw, dict):
        if isinstance(raw.get("tick"), dict):          # Deriv: {"tick": {"quote", "epoch"}}
            raw = raw["tick"]
        price = raw.get("quote", raw.get("price", raw.get("close")))
        ts = raw.get("epoch", raw.get("time", raw.get("timestamp")))
    elif isinstance(raw, (list, tuple)):
        # [timestamp, price] or candle [timestamp, open, high, low, close, ...]
        ts = raw[0]
        price = raw[4] if len(raw) > 4 else raw[1]
    else:
        price = getattr(raw, "quote", getattr(raw, "price", getattr(raw, "close", None)))
        ts = getattr(raw, "epoch", getattr(raw, "time", getattr(raw, "timestamp", None)))

    if price is None:
        raise ValueError(f"No price in tick payload: {raw!r}")
    return float(price), (float(ts) if ts is not None else None)
