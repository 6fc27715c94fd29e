"""Voting endpoint."""

from fastapi import APIRouter, Depends

from theset.api.dependencies import get_vote_service, get_voter
from theset.api.schemas import VoteRequest, VoteResponse
from theset.application.services import Voter, VoteService

router = APIRouter()


@router.post("/vote", response_model=VoteResponse)
async def cast_vote(
    body: VoteRequest,
    voter: Voter = Depends(get_voter),
    votes: VoteService = Depends(get_vote_service),
) -> VoteResponse:
    """One vote per user per song. A repeat is reported, not rejected."""
    result = await votes.cast_vote(body.setlist_song_id, voter)
    return VoteResponse(
        success=result.success,
        already_voted=result.already_voted,
        limit_reached=result.limit_reached,
        votes=result.votes,
        message=result.message,
    )
