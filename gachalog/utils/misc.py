import datetime

UTC8 = datetime.timezone(datetime.timedelta(hours=8))


def get_utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def get_utc_iso_now() -> str:
    return get_utc_now().isoformat()


def get_epoch_ms() -> int:
    return int(get_utc_now().timestamp() * 1000)


def parse_gacha_ts(value: str | int | None) -> datetime.datetime | None:
    """Best-effort conversion of an upstream pull timestamp.

    Numeric values are epoch milliseconds (or seconds when small enough), anything else is tried
    as ISO 8601. Returns None when the value cannot be interpreted.
    """
    if value is None or value == "":
        return None

    text = str(value).strip()
    if text.isascii() and text.isdigit():
        try:
            number = int(text)
            seconds = number / 1000 if number >= 100_000_000_000 else number
            return datetime.datetime.fromtimestamp(seconds, datetime.UTC)
        except (OverflowError, OSError, ValueError):
            return None

    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC8)


def parse_date_bound(value: str, *, end_of_day: bool = False) -> datetime.datetime:
    """Parse a ``YYYY-MM-DD`` bound in UTC+8.

    Raises:
        ValueError: If the value is not a valid date
    """
    day = datetime.date.fromisoformat(value.strip())
    moment = datetime.datetime.combine(day, datetime.time.min, tzinfo=UTC8)
    if end_of_day:
        moment += datetime.timedelta(days=1) - datetime.timedelta(microseconds=1)
    return moment
