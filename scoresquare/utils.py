WEI_PER_ETH = 10 ** 18

ORDINAL_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}


# Follower counts, ticket totals: 1'234
def thousands(n):
    if n is None:
        return "-"
    return "{:,}".format(int(n)).replace(",", "'")


def ordinalformat(n):
    """Rank as text, e.g. 1st, 12th, 1'023rd."""
    n = int(n)
    suffix = "th" if n % 100 in (11, 12, 13) else ORDINAL_SUFFIXES.get(n % 10, "th")
    return thousands(n) + suffix


def percent(part, whole):
    if not whole:
        return "0.0%"
    return f"{part / whole * 100:.1f}%"


def eth(wei):
    if wei is None:
        return "-"
    return f"{int(wei) / WEI_PER_ETH:.4f} ETH"
