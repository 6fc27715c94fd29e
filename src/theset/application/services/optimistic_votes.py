# Listen up, this is the CLIENT side of voting, kept here so every consumer
# (web views, the CLI, tests) uses the same rules:
#   - bump the local count and set the voted flag BEFORE the round trip
#   - server says yes  -> adopt the server's count (it may include other votes)
#   - server says no, or the call blows up -> restore BOTH fields exactly
#
# Nothing here is authoritative. The store decides; this only keeps the UI snappy.
"""Optimistic vote state with rollback, plus the anonymous vote allowance."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace

from theset.domain.entities import SetlistSongView, VoteResult

from .vote_events import VoteEvent

logger = logging.getLogger(__name__)

SubmitVote = Callable[[str], Awaitable[VoteResult]]


@dataclass
class SongVoteState:
    votes: int = 0
    has_voted: bool = False
    pending: bool = False


class AnonymousVoteAllowance:
    """Bounded local vote allowance for signed-out users. Not a security boundary."""

    def __init__(self, limit: int = 3, used: int = 0) -> None:
        self.limit = limit
        self.used = used

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    def can_vote(self) -> bool:
        return self.used < self.limit

    def consume(self) -> bool:
        if not self.can_vote():
            return False
        self.used += 1
        return True

    def refund(self) -> None:
        self.used = max(self.used - 1, 0)


class OptimisticVoteTracker:
    """Local vote counters for one setlist."""

    def __init__(self, allowance: AnonymousVoteAllowance | None = None) -> None:
        self._songs: dict[str, SongVoteState] = {}
        self._snapshots: dict[str, SongVoteState] = {}
        self._allowance = allowance

    def load(self, views: Iterable[SetlistSongView]) -> None:
        """Seed from server data (e.g. get_setlist_votes)."""
        for view in views:
            self._songs[view.song.id] = SongVoteState(
                votes=view.song.votes, has_voted=view.has_voted
            )

    def state(self, song_id: str) -> SongVoteState:
        return replace(self._songs.get(song_id, SongVoteState()))

    def apply(self, song_id: str) -> bool:
        """Optimistic +1. False when already voted, in flight, or out of allowance."""
        current = self._songs.setdefault(song_id, SongVoteState())
        if current.has_voted or current.pending:
            return False
        if self._allowance is not None and not self._allowance.consume():
            return False
        self._snapshots[song_id] = replace(current)
        current.votes += 1
        current.has_voted = True
        current.pending = True
        return True

    def confirm(self, song_id: str, server_votes: int) -> None:
        self._snapshots.pop(song_id, None)
        current = self._songs.setdefault(song_id, SongVoteState())
        current.votes = server_votes
        current.has_voted = True
        current.pending = False

    def rollback(self, song_id: str) -> None:
        """Restore the pre-optimistic count and voted flag."""
        snapshot = self._snapshots.pop(song_id, None)
        if snapshot is None:
            return
        self._songs[song_id] = replace(snapshot, pending=False)
        if self._allowance is not None:
            self._allowance.refund()

    async def submit(self, song_id: str, send: SubmitVote) -> VoteResult | None:
        """Apply, call the server, then confirm or roll back.

        Returns None when the vote was not attempted. Transport errors are
        re-raised after the rollback.
        """
        if not self.apply(song_id):
            return None
        try:
            result = await send(song_id)
        except Exception:
            logger.warning("Vote for %s failed in transit, rolling back", song_id)
            self.rollback(song_id)
            raise
        if result.success:
            self.confirm(song_id, result.votes)
        else:
            self.rollback(song_id)
        return result

    def apply_remote_update(self, event: VoteEvent) -> None:
        """Realtime push: adopt the absolute count unless our own vote is in flight."""
        current = self._songs.setdefault(event.setlist_song_id, SongVoteState())
        if current.pending:
            snapshot = self._snapshots.get(event.setlist_song_id)
            if snapshot is not None:
                snapshot.votes = event.votes
            return
        current.votes = event.votes
