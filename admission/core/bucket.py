"""Time-bucketed counter key derivation.

Time is cut into fixed, non-overlapping windows of ``window_seconds``. A
timestamp that lands exactly on a boundary belongs to the new window.
"""

from __future__ import annotations


def _check_window(window_seconds: int) -> None:
    if window_seconds < 1:
        raise ValueError("window_seconds must be >= 1")


def time_bucket(now: float, window_seconds: int) -> int:
    """Return the index of the window containing ``now``.

    Args:
        now: UNIX time in seconds.
        window_seconds: Window size in seconds.

    Returns:
        ``floor(now / window_seconds)``.

    Raises:
        ValueError: If window_seconds is not positive.
    """
    _check_window(window_seconds)
    return int(now // window_seconds)


def window_bounds(now: float, window_seconds: int) -> tuple[int, int]:
    """Compute fixed-window boundaries for a given timestamp.

    Returns:
        Tuple of (window_start_epoch_seconds, reset_at_epoch_seconds).
    """
    window_start = time_bucket(now, window_seconds) * window_seconds
    return window_start, window_start + window_seconds


def derive_bucket_key(
    identity: str,
    now: float,
    window_seconds: int,
    *,
    prefix: str = "",
    separator: str = "",
) -> str:
    """Build the counter key for ``identity`` in the window containing ``now``.

    With the default prefix and separator the key is the identity directly
    followed by the bucket index, e.g. ``"1.2.3.4" + "28633512"``.

    Examples:
        >>> derive_bucket_key("1.2.3.4", 120.0, 60)
        '1.2.3.42'
        >>> derive_bucket_key("1.2.3.4", 120.0, 60, prefix="rl:", separator=":")
        'rl:1.2.3.4:2'
    """
    bucket = time_bucket(now, window_seconds)
    return f"{prefix}{identity}{separator}{bucket}"
