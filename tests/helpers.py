"""Shared test helpers."""


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def expected_aggregate(ratings):
    """Reference mean for review sets: half-up to one decimal, 0 when empty."""
    if not ratings:
        return 0
    total = sum(ratings) * 10 / len(ratings)
    whole = int(total)
    return (whole + (1 if total - whole >= 0.5 else 0)) / 10
