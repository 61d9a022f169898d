"""Security codes - public 16-character ticket identifiers.

Codes use an alphabet without look-alike characters (no 0/O, 1/I) and are
drawn with ``secrets``, one character at a time.
"""

import secrets

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.exceptions import SecurityCodeExhaustedError
from scratch_lottery.models.lottery import Ticket

SECURITY_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SECURITY_CODE_LENGTH = 16
MAX_ATTEMPTS = 10


def generate_security_code() -> str:
    """Generate one random security code (not checked for uniqueness)."""
    return "".join(secrets.choice(SECURITY_CODE_ALPHABET) for _ in range(SECURITY_CODE_LENGTH))


def is_valid_format(code: str) -> bool:
    return len(code) == SECURITY_CODE_LENGTH and all(c in SECURITY_CODE_ALPHABET for c in code)


async def is_code_unused(db: AsyncSession, code: str) -> bool:
    result = await db.execute(
        select(func.count()).select_from(Ticket).where(Ticket.security_code == code)
    )
    return result.scalar_one() == 0


async def generate_unique_security_code(db: AsyncSession, reserved: set[str] | None = None) -> str:
    """Generate a code no ticket uses yet.

    Args:
        db: Session used for the uniqueness check
        reserved: Codes already handed out in the current batch

    Raises:
        SecurityCodeExhaustedError: Every attempt collided
    """
    reserved = reserved or set()
    for _ in range(MAX_ATTEMPTS):
        code = generate_security_code()
        if code in reserved:
            continue
        if await is_code_unused(db, code):
            return code
    raise SecurityCodeExhaustedError(
        "could not generate a unique security code",
        {"attempts": MAX_ATTEMPTS},
    )
