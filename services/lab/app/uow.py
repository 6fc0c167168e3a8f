from __future__ import annotations

from typing import Any, Self

from sqlalchemy.orm import Session, sessionmaker


class UnitOfWork:
    """Transaction scope for one lab operation.

    Opens a session on enter. On a clean exit the transaction commits (which is when
    dirty-checked changes are flushed) unless the unit is read-only. On an exception it
    rolls back and the exception propagates. The session is closed on every path.

    Instances loaded inside the unit stay usable afterwards for attributes that were
    already loaded; anything still lazy raises `DetachedInstanceError` on access.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, read_only: bool = False):
        self.session_factory = session_factory
        self.read_only = read_only
        self.session: Session | None = None

    def __enter__(self) -> Self:
        self.session = self.session_factory()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is not None:
                self.rollback()
            elif not self.read_only:
                self.commit()
        finally:
            if self.session is not None:
                self.session.close()
                self.session = None

    def commit(self) -> None:
        """Commit the current transaction."""
        if self.session:
            self.session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        if self.session:
            self.session.rollback()

    def flush(self) -> None:
        """Flush pending changes without committing."""
        if self.session:
            self.session.flush()
