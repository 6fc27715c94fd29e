"""Dependency injection for API endpoints."""

import logging
import secrets
from typing import Any, cast

from fastapi import Depends, Header, HTTPException, Request

from theset.application.services import (
    EntityReconciler,
    SetlistService,
    SyncOrchestrator,
    Voter,
    VoteEventBroker,
    VoteService,
)
from theset.application.workers import BackgroundTaskRunner
from theset.config import Settings
from theset.domain.exceptions import AuthenticationError, ConfigurationError
from theset.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, everything below is created ONCE in the lifespan (see
# infrastructure/lifecycle.py) and parked on app.state. A missing attribute means
# startup didn't finish, so we answer 503 instead of crashing with AttributeError.
def _from_state(request: Request, name: str) -> Any:
    if not hasattr(request.app.state, name):
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return getattr(request.app.state, name)


def get_app_settings(request: Request) -> Settings:
    return cast(Settings, _from_state(request, "settings"))


def get_db(request: Request) -> Database:
    return cast(Database, _from_state(request, "db"))


def get_background_runner(request: Request) -> BackgroundTaskRunner:
    return cast(BackgroundTaskRunner, _from_state(request, "background"))


def get_vote_broker(request: Request) -> VoteEventBroker:
    return cast(VoteEventBroker, _from_state(request, "vote_broker"))


def get_reconciler(request: Request) -> EntityReconciler:
    return cast(EntityReconciler, _from_state(request, "reconciler"))


def get_setlist_service(request: Request) -> SetlistService:
    return cast(SetlistService, _from_state(request, "setlist_service"))


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return cast(SyncOrchestrator, _from_state(request, "orchestrator"))


def get_vote_service(request: Request) -> VoteService:
    return cast(VoteService, _from_state(request, "vote_service"))


def require_sync_token(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Bearer token check for sync endpoints.

    Raises:
        ConfigurationError: No sync token configured on the server (503).
        AuthenticationError: Header missing, malformed or wrong (401).
    """
    expected = settings.api.sync_token
    if not expected:
        raise ConfigurationError("Sync token not configured")
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization must be 'Bearer <token>'")
    if not secrets.compare_digest(token.strip(), expected):
        raise AuthenticationError("Invalid sync token")


def get_optional_user_id(
    x_user_id: str | None = Header(default=None),
    x_anonymous_id: str | None = Header(default=None),
) -> str | None:
    """Voter key used for has_voted flags on reads. None for strangers."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    if x_anonymous_id and x_anonymous_id.strip():
        return Voter.anonymous(x_anonymous_id).user_id
    return None


# Listen up, auth session plumbing lives in front of this app. By the time a request
# gets here the gateway has put the signed-in user id in X-User-Id. Signed-out
# clients send their local fingerprint as X-Anonymous-Id and get the soft limit.
def get_voter(
    x_user_id: str | None = Header(default=None),
    x_anonymous_id: str | None = Header(default=None),
) -> Voter:
    if x_user_id and x_user_id.strip():
        return Voter.authenticated(x_user_id)
    if x_anonymous_id and x_anonymous_id.strip():
        return Voter.anonymous(x_anonymous_id)
    raise AuthenticationError("Sign in or send an anonymous id to vote")
