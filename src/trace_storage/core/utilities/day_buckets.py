"""UTC day buckets used to partition dependency links"""

from datetime import UTC, datetime, timedelta

DAY_MILLIS = int(timedelta(days=1).total_seconds() * 1000)


def utc_midnight_millis(timestamp_millis: int) -> int:
    day = datetime.fromtimestamp(max(0, timestamp_millis) / 1000, tz=UTC).date()
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp() * 1000)


def link_days(end_ts: int, lookback: int) -> list[int]:
    """UTC midnights (epoch millis) from the day of end_ts back to the day of end_ts - lookback"""
    end_day = utc_midnight_millis(end_ts)
    start_day = utc_midnight_millis(end_ts - lookback)
    return list(range(end_day, start_day - 1, -DAY_MILLIS))
