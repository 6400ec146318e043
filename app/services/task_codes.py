"""
Task code allocation.

A task code looks like ``DM-007``: the owner's initials, a dash, and a
sequence number that is zero-padded to at least three digits. Sequences are
scoped per initials prefix and never reused, even after a task is deleted.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud

DEFAULT_PREFIX = "TSK"
MAX_INITIALS = 3
MIN_DIGITS = 3


def initials_for(name: str) -> str:
    """
    'Dimas Maulana Ahmad' -> 'DMA'. Names with no usable words fall back to 'TSK'.
    """
    words = [word for word in (name or "").split() if word]
    initials = "".join(word[0] for word in words).upper()[:MAX_INITIALS]
    return initials or DEFAULT_PREFIX


def parse_sequence(code: str) -> int | None:
    """
    Returns the numeric suffix of 'AB-012', or None when the code does not
    split into exactly two dash-separated parts with an integer suffix.
    """
    parts = code.split("-")
    if len(parts) != 2 or not (parts[1].isascii() and parts[1].isdigit()):
        return None
    return int(parts[1])


def highest_sequence(codes: list[str]) -> int:
    return max((n for n in map(parse_sequence, codes) if n is not None), default=0)


def format_code(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:0{MIN_DIGITS}d}"


async def allocate_code(db: AsyncSession, owner_name: str) -> str:
    """
    Reserves the next code for the owner's initials inside the caller's
    transaction. The reservation only becomes permanent when that
    transaction commits.
    """
    prefix = initials_for(owner_name)
    existing = await crud.get_codes_with_prefix(db, prefix)
    sequence = await crud.bump_code_counter(db, prefix, floor=highest_sequence(existing))
    return format_code(prefix, sequence)
