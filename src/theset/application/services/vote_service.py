# Hey future me - THE invariant of the whole app lives here: at most one vote per
# (user, setlist song), and the song's counter equals the number of vote rows.
#
# Three layers, outermost first:
#   1. precheck (cheap "already voted" answer for the common double-click case)
#   2. INSERT inside a savepoint; uq_votes_song_user is the real guard, and a
#      unique violation is reported as "already voted", never as an error
#   3. UPDATE setlist_songs SET votes = votes + 1 (atomic, no read-modify-write)
#
# There is NO read-then-write fallback for the counter. If the atomic UPDATE
# fails, the whole transaction (vote row included) rolls back.
"""Voting: one vote per user per setlist song, with a denormalized counter."""

import logging
from dataclasses import dataclass

from theset.domain.entities import SetlistSongView, VoteResult
from theset.domain.exceptions import EntityNotFoundException, ValidationException
from theset.infrastructure.persistence import (
    Database,
    SetlistRepository,
    SetlistSongRepository,
    VoteRepository,
)

from .vote_events import VoteEvent, VoteEventBroker

logger = logging.getLogger(__name__)

ANONYMOUS_PREFIX = "anon:"


@dataclass(frozen=True)
class Voter:
    """Who is voting. Anonymous voters are keyed by a client fingerprint."""

    user_id: str
    is_anonymous: bool = False

    @classmethod
    def authenticated(cls, user_id: str) -> "Voter":
        if not user_id or not user_id.strip():
            raise ValidationException("user id is required")
        return cls(user_id=user_id.strip())

    @classmethod
    def anonymous(cls, fingerprint: str) -> "Voter":
        if not fingerprint or not fingerprint.strip():
            raise ValidationException("anonymous fingerprint is required")
        return cls(user_id=f"{ANONYMOUS_PREFIX}{fingerprint.strip()}", is_anonymous=True)


class VoteService:
    """Cast votes and read per-setlist counts."""

    def __init__(
        self,
        db: Database,
        broker: VoteEventBroker | None = None,
        anonymous_vote_limit: int = 3,
    ) -> None:
        self._db = db
        self._broker = broker
        self._anonymous_vote_limit = anonymous_vote_limit

    async def cast_vote(self, setlist_song_id: str, voter: Voter) -> VoteResult:
        """Record one vote.

        "Already voted" and "anonymous limit reached" come back as unsuccessful
        results, not exceptions.

        Raises:
            EntityNotFoundException: The setlist song does not exist.
        """
        async with self._db.session_scope() as session:
            songs = SetlistSongRepository(session)
            votes = VoteRepository(session)

            song = await songs.get(setlist_song_id)
            if song is None:
                raise EntityNotFoundException("setlist_song", setlist_song_id)

            if await votes.exists(setlist_song_id, voter.user_id):
                return VoteResult(success=False, votes=song.votes, already_voted=True)

            # Soft limit: a cleared fingerprint gets a fresh allowance
            if voter.is_anonymous:
                used = await votes.count_for_user_in_setlist(voter.user_id, song.setlist_id)
                if used >= self._anonymous_vote_limit:
                    return VoteResult(
                        success=False,
                        votes=song.votes,
                        limit_reached=True,
                        message=(
                            f"Anonymous voters get {self._anonymous_vote_limit} votes "
                            "per setlist. Sign in to vote more."
                        ),
                    )

            vote = await votes.add(setlist_song_id, voter.user_id)
            if vote is None:
                return VoteResult(success=False, votes=song.votes, already_voted=True)

            count = await songs.increment_votes(setlist_song_id)

        logger.info(
            "Vote recorded for song %s (now %d)",
            setlist_song_id,
            count,
            extra={
                "setlist_id": song.setlist_id,
                "setlist_song_id": setlist_song_id,
                "anonymous": voter.is_anonymous,
            },
        )
        # Publish only after commit so subscribers never see an uncommitted count
        if self._broker is not None:
            self._broker.publish(VoteEvent(song.setlist_id, setlist_song_id, count))
        return VoteResult(success=True, votes=count)

    async def get_setlist_votes(
        self, setlist_id: str, user_id: str | None = None
    ) -> list[SetlistSongView]:
        async with self._db.session_scope() as session:
            if await SetlistRepository(session).get(setlist_id) is None:
                raise EntityNotFoundException("setlist", setlist_id)
            songs = await SetlistSongRepository(session).list_for_setlist(setlist_id)
            voted: set[str] = set()
            if user_id:
                voted = await VoteRepository(session).voted_song_ids(user_id, setlist_id)
        return [SetlistSongView(song=song, has_voted=song.id in voted) for song in songs]
