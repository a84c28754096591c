"""
Match Registry: per-match critical sections and the atomic save boundary.

All mutation of a Match or its VetoSession happens inside locked(slug)
(or with_lock / locked_all):
validate -> mutate -> save -> release. Locks are keyed by match slug, created
lazily and dropped when no thread holds or waits on them, so unrelated
matches never contend.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Callable, Dict, Iterator, Optional, Sequence, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tourney.models.match import Match
from tourney.models.veto_session import VetoSession
from tourney.services.errors import MatchNotFound, NotYourTurn

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _SlugLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class MatchRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, _SlugLock] = {}

    @contextmanager
    def locked(self, slug: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(slug)
            if entry is None:
                entry = self._locks[slug] = _SlugLock()
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[slug]

    @contextmanager
    def locked_all(self, slugs: Sequence[str]) -> Iterator[None]:
        """
        Hold the critical sections of several matches at once.

        Slugs must come in bracket order (round, then match number): that is
        the child -> parent order results nest their locks in.
        """
        with ExitStack() as stack:
            for slug in slugs:
                stack.enter_context(self.locked(slug))
            yield

    def with_lock(self, slug: str, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run fn(*args, **kwargs) while holding the critical section for slug."""
        with self.locked(slug):
            return fn(*args, **kwargs)

    def active_slugs(self):
        """Slugs that currently have a lock entry (held or waited on)."""
        with self._guard:
            return sorted(self._locks)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, session: Session, slug: str) -> Optional[Match]:
        match = session.exec(select(Match).where(Match.slug == slug)).first()
        if match is not None:
            # Another request may have committed since this session loaded it
            session.refresh(match)
        return match

    def get(self, session: Session, slug: str) -> Match:
        match = self.find(session, slug)
        if match is None:
            raise MatchNotFound(f"Match '{slug}' not found")
        return match

    def get_veto(self, session: Session, match: Match) -> Optional[VetoSession]:
        veto = session.exec(select(VetoSession).where(VetoSession.match_id == match.id)).first()
        if veto is not None:
            session.refresh(veto)
        return veto

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, session: Session, match: Match, veto: Optional[VetoSession] = None) -> None:
        """
        Persist a match and (optionally) its veto session in one transaction.

        A unique-constraint violation means another writer already consumed
        the same veto step; the transaction is rolled back and the caller sees
        the same failure a lock loser would.
        """
        session.add(match)
        if veto is not None:
            session.add(veto)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.warning("Concurrent write rejected for match %s: %s", match.slug, exc.orig)
            raise NotYourTurn("Another action for this step was accepted first; re-fetch the veto state") from exc
        session.refresh(match)
        if veto is not None:
            session.refresh(veto)


registry = MatchRegistry()
