"""
Booking reference (PNR) and ticket number generation.

The generator only produces candidates. Uniqueness is guaranteed by the
UNIQUE constraints on booking.pnr and ticket.ticket_number;
allocate_unique() pre-checks a candidate so that a collision usually just
means drawing another one, and falls back on the constraint violation
when two writers race for the same value.
"""

import logging
import random
import string
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import IdentifierExhaustedError

logger = logging.getLogger(__name__)

PNR_ALPHABET = string.ascii_uppercase + string.digits
PNR_LENGTH = 6
TICKET_SERIAL_LENGTH = 10
DEFAULT_MAX_ATTEMPTS = 10

PNR_EXHAUSTED = "PNR generation exhausted"
TICKET_NUMBER_EXHAUSTED = "ticket number generation exhausted"

T = TypeVar("T")


class IdentifierGenerator:
    """
    Candidate generator for PNRs and ticket numbers.

    Args:
        rng: Source of randomness. Defaults to random.SystemRandom();
            pass random.Random(seed) for reproducible sequences.
        carrier_prefix: 3-digit airline accounting code that starts
            every ticket number.
    """

    def __init__(self, rng: Optional[random.Random] = None, carrier_prefix: str = "001"):
        if len(carrier_prefix) != 3 or not carrier_prefix.isdigit():
            raise ValueError(f"Carrier prefix must be exactly 3 digits, got {carrier_prefix!r}")
        self.rng = rng or random.SystemRandom()
        self.carrier_prefix = carrier_prefix

    def generate_pnr(self) -> str:
        """Return a 6-character candidate drawn uniformly from A-Z and 0-9."""
        return "".join(self.rng.choice(PNR_ALPHABET) for _ in range(PNR_LENGTH))

    def generate_ticket_number(self) -> str:
        """Return a 13-digit candidate: carrier prefix plus 10 random digits."""
        serial = "".join(str(self.rng.randrange(10)) for _ in range(TICKET_SERIAL_LENGTH))
        return f"{self.carrier_prefix}{serial}"


def _candidate_exists(session: Session, column: Any, candidate: str) -> bool:
    return session.query(column).filter(column == candidate).first() is not None


def allocate_unique(
    session: Session,
    column: Any,
    generator: Callable[[], str],
    build: Callable[[str], T],
    exhausted_message: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """
    Insert a row keyed by a freshly generated unique identifier.

    Each attempt draws a candidate, skips it if it is already taken, then
    adds build(candidate) and flushes it inside a SAVEPOINT. A unique
    violation on the identifier rolls back only that savepoint and the
    loop tries again with a new candidate.

    Args:
        session: Active session; the row is flushed but not committed
        column: Unique column the identifier is stored in, e.g. Booking.pnr
        generator: Zero-argument candidate generator
        build: Creates the (unsaved) ORM object for a candidate
        exhausted_message: Message of the error raised when all attempts fail
        max_attempts: Number of candidates to try

    Returns:
        The flushed ORM object

    Raises:
        IdentifierExhaustedError: If no unique candidate was found
        IntegrityError: If the insert failed for a reason other than the
            identifier being taken
    """
    for attempt in range(1, max_attempts + 1):
        candidate = generator()

        if _candidate_exists(session, column, candidate):
            logger.warning(
                f"Identifier collision on {column.key}={candidate} "
                f"(attempt {attempt}/{max_attempts}), drawing a new candidate"
            )
            continue

        instance = build(candidate)
        try:
            with session.begin_nested():
                session.add(instance)
                session.flush()
        except IntegrityError:
            if not _candidate_exists(session, column, candidate):
                raise
            logger.warning(
                f"Concurrent insert took {column.key}={candidate} "
                f"(attempt {attempt}/{max_attempts}), drawing a new candidate"
            )
            continue

        return instance

    logger.error(f"{exhausted_message} after {max_attempts} attempts")
    raise IdentifierExhaustedError(exhausted_message, {"attempts": max_attempts})
