"""External integration client implementations."""

from theset.infrastructure.integrations.setlistfm_client import SetlistFmClient
from theset.infrastructure.integrations.spotify_client import SpotifyClient
from theset.infrastructure.integrations.ticketmaster_client import TicketmasterClient

__all__ = ["SetlistFmClient", "SpotifyClient", "TicketmasterClient"]
