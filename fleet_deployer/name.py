"""Helpers for building kubernetes object names."""

import hashlib

__all__ = [
    "safe_concat_name",
]

MAX_NAME_LENGTH = 63
_HASH_LENGTH = 5


def safe_concat_name(*names: str) -> str:
    """Join the names with `-`, shortening the result to fit a kubernetes name.

    A name that is too long is truncated and given a short hash suffix of the
    full name so that distinct long names remain distinct. The same input
    always produces the same output.
    """
    full_name = "-".join(names)
    if len(full_name) <= MAX_NAME_LENGTH:
        return full_name
    digest = hashlib.sha256(full_name.encode("utf-8")).hexdigest()[:_HASH_LENGTH]
    cut = MAX_NAME_LENGTH - _HASH_LENGTH - 1
    # The last character of the prefix must be a lowercase alphanumeric
    last = full_name[cut - 1]
    if last.isascii() and (last.islower() or last.isdigit()):
        return f"{full_name[:cut]}-{digest}"
    return f"{full_name[:cut - 1]}-{digest}"
