"""
Unit-of-work helper.

Every multi-statement write runs inside ``atomic()`` so it either commits
as a whole or leaves no trace:

    with atomic():
        db.session.add(a)
        db.session.add(b)
    # committed here; any exception rolled back and re-raised
"""

import logging
from contextlib import contextmanager

from squads_virtuais.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """Commit on success, roll back and re-raise on any exception."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
