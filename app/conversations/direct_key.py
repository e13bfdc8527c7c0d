SEPARATOR = ":"


def canonicalize(user_a: str, user_b: str) -> str:
    """
    Order-independent key for a pair of members.

    `canonicalize(a, b) == canonicalize(b, a)`; the key is the only thing
    that makes a direct conversation unique, so it must never be taken from
    user input.
    """
    a, b = str(user_a), str(user_b)

    if not a or not b:
        raise ValueError("Both member ids are required to build a direct key.")

    # Canonical ordering (must match the unique index on conversations.direct_key)
    u1, u2 = sorted([a, b])
    return f"{u1}{SEPARATOR}{u2}"
