"""Transaction helper shared by the services.

Every state change runs inside ``unit_of_work``: the block either commits as
a whole or is rolled back on any exception.  Domain errors pass through
unchanged, database connectivity problems become ``StorageUnavailable`` (safe to retry).
"""

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import db
from .errors import FloorTrackError, StorageUnavailable


@contextmanager
def unit_of_work(operation: str, on_conflict=None):
    """Commit the session when the block exits cleanly.

    ``on_conflict`` maps an ``IntegrityError`` raised while committing to a
    domain error.  Without it the integrity error propagates after rollback.
    """
    try:
        yield db.session
        db.session.commit()
    except FloorTrackError:
        db.session.rollback()
        raise
    except IntegrityError as e:
        db.session.rollback()
        if on_conflict is None:
            raise
        raise on_conflict(e) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageUnavailable(operation, str(getattr(e, "orig", e))) from e
    except Exception:
        db.session.rollback()
        raise
