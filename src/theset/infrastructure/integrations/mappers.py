"""Normalize vendor JSON and loose records into domain entities.

Hey future me - NOTHING downstream of this module should ever look at vendor
JSON. Ticketmaster nests everything under _embedded, setlist.fm nests songs
three levels deep and uses DD-MM-YYYY dates, callers of save-show send
camelCase. All of that gets flattened HERE into typed entities, and missing
fields become None (never "") so the coalesce upsert can tell them apart.
"""

import re
from datetime import UTC, datetime
from typing import Any, NamedTuple

from theset.domain.entities import Artist, Show, Track, Venue
from theset.domain.exceptions import ValidationException

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Ticketmaster fills unknown classifications with this literal
_TM_UNDEFINED = "Undefined"


class FlattenedSong(NamedTuple):
    name: str
    position: int
    is_encore: bool


class ParsedSetlist(NamedTuple):
    setlistfm_id: str
    event_date: datetime
    tour_name: str | None
    venue: Venue
    songs: list[FlattenedSong]
    artist_mbid: str | None
    artist_name: str | None


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float_or_none(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _nested(data: dict[str, Any], *path: str) -> Any:
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def best_image(images: list[dict[str, Any]] | None) -> str | None:
    """Widest image URL, or None."""
    if not images:
        return None
    widest = max(images, key=lambda img: img.get("width") or 0)
    return _str_or_none(widest.get("url"))


def _require(value: Any, what: str) -> str:
    text = _str_or_none(value)
    if text is None:
        raise ValidationException(f"Missing required field: {what}")
    return text


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_setlistfm_date(value: str | None) -> datetime | None:
    """Setlist.fm eventDate is DD-MM-YYYY."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%d-%m-%Y").replace(tzinfo=UTC)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Ticketmaster
# ---------------------------------------------------------------------------


def _tm_genres(classifications: list[dict[str, Any]] | None) -> list[str] | None:
    genres: list[str] = []
    for item in classifications or []:
        for key in ("genre", "subGenre"):
            name = _str_or_none(_nested(item, key, "name"))
            if name and name != _TM_UNDEFINED and name not in genres:
                genres.append(name)
    return genres or None


def artist_from_ticketmaster(attraction: dict[str, Any]) -> Artist:
    """Ticketmaster attraction -> Artist keyed by the attraction id."""
    tm_id = _require(attraction.get("id"), "attraction id")
    return Artist(
        id=tm_id,
        name=_require(attraction.get("name"), "attraction name"),
        ticketmaster_id=tm_id,
        image_url=best_image(attraction.get("images")),
        url=_str_or_none(attraction.get("url")),
        genres=_tm_genres(attraction.get("classifications")),
        upcoming_shows=_int_or_none(_nested(attraction, "upcomingEvents", "_total")),
    )


def venue_from_ticketmaster(venue: dict[str, Any]) -> Venue:
    tm_id = _require(venue.get("id"), "venue id")
    return Venue(
        id=tm_id,
        name=_require(venue.get("name"), "venue name"),
        ticketmaster_id=tm_id,
        city=_str_or_none(_nested(venue, "city", "name")),
        state=_str_or_none(_nested(venue, "state", "name")),
        country=_str_or_none(_nested(venue, "country", "name")),
        address=_str_or_none(_nested(venue, "address", "line1")),
        postal_code=_str_or_none(venue.get("postalCode")),
        latitude=_float_or_none(_nested(venue, "location", "latitude")),
        longitude=_float_or_none(_nested(venue, "location", "longitude")),
        url=_str_or_none(venue.get("url")),
        image_url=best_image(venue.get("images")),
    )


def _tm_event_date(event: dict[str, Any]) -> datetime | None:
    start = _nested(event, "dates", "start") or {}
    parsed = parse_iso_datetime(start.get("dateTime"))
    if parsed is not None:
        return parsed
    local_date = start.get("localDate")
    if not local_date:
        return None
    local_time = start.get("localTime") or "00:00:00"
    return parse_iso_datetime(f"{local_date}T{local_time}")


def show_from_ticketmaster(
    event: dict[str, Any],
) -> tuple[Show, Artist | None, Venue | None]:
    """Event -> (Show, embedded Artist, embedded Venue).

    Embedded attraction/venue that fail validation come back as None and the
    show is left provisional.
    """
    tm_id = _require(event.get("id"), "event id")
    embedded = event.get("_embedded") or {}

    artist: Artist | None = None
    attractions = embedded.get("attractions") or []
    if attractions:
        try:
            artist = artist_from_ticketmaster(attractions[0])
        except ValidationException:
            artist = None

    venue: Venue | None = None
    venues = embedded.get("venues") or []
    if venues:
        try:
            venue = venue_from_ticketmaster(venues[0])
        except ValidationException:
            venue = None

    show = Show(
        id=tm_id,
        name=_require(event.get("name"), "event name"),
        date=_tm_event_date(event),
        artist_id=artist.id if artist else None,
        venue_id=venue.id if venue else None,
        ticketmaster_id=tm_id,
        ticket_url=_str_or_none(event.get("url")),
        image_url=best_image(event.get("images")),
        status=_str_or_none(_nested(event, "dates", "status", "code")),
    )
    return show, artist, venue


# ---------------------------------------------------------------------------
# Spotify
# ---------------------------------------------------------------------------


def artist_from_spotify(data: dict[str, Any]) -> Artist:
    spotify_id = _require(data.get("id"), "spotify artist id")
    return Artist(
        id=spotify_id,
        name=_require(data.get("name"), "spotify artist name"),
        spotify_id=spotify_id,
        image_url=best_image(data.get("images")),
        url=_str_or_none(_nested(data, "external_urls", "spotify")),
        genres=list(data["genres"]) if data.get("genres") else None,
        popularity=_int_or_none(data.get("popularity")),
        followers=_int_or_none(_nested(data, "followers", "total")),
    )


def track_from_spotify(
    data: dict[str, Any], artist_id: str, album: dict[str, Any] | None = None
) -> Track:
    """Spotify track (top-tracks item or album-tracks item) -> Track.

    Album-tracks items carry no album block, so the album is passed in.
    """
    spotify_id = _require(data.get("id"), "spotify track id")
    album = data.get("album") or album or {}
    return Track(
        id=spotify_id,
        artist_id=artist_id,
        name=_require(data.get("name"), "track name"),
        spotify_id=spotify_id,
        album_name=_str_or_none(album.get("name")),
        album_image_url=best_image(album.get("images")),
        duration_ms=_int_or_none(data.get("duration_ms")),
        popularity=_int_or_none(data.get("popularity")),
        preview_url=_str_or_none(data.get("preview_url")),
    )


# ---------------------------------------------------------------------------
# Setlist.fm
# ---------------------------------------------------------------------------


def venue_from_setlistfm(venue: dict[str, Any] | None) -> Venue:
    if not venue or not venue.get("id") or not venue.get("name"):
        raise ValidationException("Malformed venue data in setlist")
    sfm_id = str(venue["id"])
    city = venue.get("city") or {}
    country = city.get("country") or {}
    coords = city.get("coords") or {}
    return Venue(
        id=f"sfm-{sfm_id}",
        name=str(venue["name"]),
        setlistfm_id=sfm_id,
        city=_str_or_none(city.get("name")),
        state=_str_or_none(city.get("state")),
        country=_str_or_none(country.get("name") or country.get("code")),
        latitude=_float_or_none(coords.get("lat")),
        longitude=_float_or_none(coords.get("long")),
        url=_str_or_none(venue.get("url")),
    )


def flatten_setlist_songs(raw: dict[str, Any]) -> list[FlattenedSong]:
    """Flatten sets.set[].song[] in source order.

    Positions are 0-based and only count real songs: tape (pre-recorded) and
    nameless entries are dropped. A set carrying an ``encore`` marker flags
    all its songs as encore.
    """
    sets = _nested(raw, "sets", "set") or []
    # A single set sometimes arrives as an object instead of a list
    if isinstance(sets, dict):
        sets = [sets]

    songs: list[FlattenedSong] = []
    for set_ in sets:
        is_encore = bool(set_.get("encore"))
        entries = set_.get("song") or []
        if isinstance(entries, dict):
            entries = [entries]
        for entry in entries:
            name = _str_or_none(entry.get("name"))
            if not name or entry.get("tape"):
                continue
            songs.append(FlattenedSong(name, len(songs), is_encore))
    return songs


def setlist_from_setlistfm(raw: dict[str, Any]) -> ParsedSetlist:
    setlist_id = _require(raw.get("id"), "setlist id")
    event_date = parse_setlistfm_date(raw.get("eventDate"))
    if event_date is None:
        raise ValidationException(
            f"Setlist {setlist_id} has invalid eventDate {raw.get('eventDate')!r}"
        )
    artist = raw.get("artist") or {}
    return ParsedSetlist(
        setlistfm_id=setlist_id,
        event_date=event_date,
        tour_name=_str_or_none(_nested(raw, "tour", "name")),
        venue=venue_from_setlistfm(raw.get("venue")),
        songs=flatten_setlist_songs(raw),
        artist_mbid=_str_or_none(artist.get("mbid")),
        artist_name=_str_or_none(artist.get("name")),
    )


def artist_from_setlistfm(artist: dict[str, Any]) -> Artist:
    mbid = _require(artist.get("mbid"), "artist mbid")
    return Artist(
        id=mbid,
        name=_require(artist.get("name"), "artist name"),
        setlistfm_mbid=mbid,
        url=_str_or_none(artist.get("url")),
    )


# ---------------------------------------------------------------------------
# Loose records (HTTP bodies, admin tools)
# ---------------------------------------------------------------------------


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _normalize_keys(record: dict[str, Any]) -> dict[str, Any]:
    return {_snake(k): v for k, v in record.items()}


# Accepted aliases for fields the frontend names differently
_ALIASES = {
    "image": "image_url",
    "ticketmaster_venue_id": "ticketmaster_id",
    "mbid": "setlistfm_mbid",
    "lat": "latitude",
    "lng": "longitude",
    "long": "longitude",
    "url_ticket": "ticket_url",
}


def normalize_record(entity_type: str, record: dict[str, Any]) -> Artist | Venue | Show:
    """Loose camelCase/snake_case dict -> typed entity.

    Raises:
        ValidationException: If id or name is missing, or the type is unknown.
    """
    data = _normalize_keys(record)
    for alias, target in _ALIASES.items():
        if alias in data and target not in data:
            data[target] = data.pop(alias)

    entity_id = _require(data.get("id"), f"{entity_type} id")
    name = _require(data.get("name"), f"{entity_type} name")

    if entity_type == "artist":
        genres = data.get("genres")
        return Artist(
            id=entity_id,
            name=name,
            spotify_id=_str_or_none(data.get("spotify_id")),
            ticketmaster_id=_str_or_none(data.get("ticketmaster_id")),
            setlistfm_mbid=_str_or_none(data.get("setlistfm_mbid")),
            image_url=_str_or_none(data.get("image_url")),
            url=_str_or_none(data.get("url")),
            genres=list(genres) if genres else None,
            popularity=_int_or_none(data.get("popularity")),
            followers=_int_or_none(data.get("followers")),
            upcoming_shows=_int_or_none(data.get("upcoming_shows")),
        )
    if entity_type == "venue":
        return Venue(
            id=entity_id,
            name=name,
            ticketmaster_id=_str_or_none(data.get("ticketmaster_id")),
            setlistfm_id=_str_or_none(data.get("setlistfm_id")),
            city=_str_or_none(data.get("city")),
            state=_str_or_none(data.get("state")),
            country=_str_or_none(data.get("country")),
            address=_str_or_none(data.get("address")),
            postal_code=_str_or_none(data.get("postal_code")),
            latitude=_float_or_none(data.get("latitude")),
            longitude=_float_or_none(data.get("longitude")),
            url=_str_or_none(data.get("url")),
            image_url=_str_or_none(data.get("image_url")),
        )
    if entity_type == "show":
        date_value = data.get("date")
        date = (
            date_value
            if isinstance(date_value, datetime)
            else parse_iso_datetime(_str_or_none(date_value))
        )
        return Show(
            id=entity_id,
            name=name,
            date=date,
            artist_id=_str_or_none(data.get("artist_id")),
            venue_id=_str_or_none(data.get("venue_id")),
            ticketmaster_id=_str_or_none(data.get("ticketmaster_id")),
            ticket_url=_str_or_none(data.get("ticket_url")),
            image_url=_str_or_none(data.get("image_url")),
            status=_str_or_none(data.get("status")),
            popularity=_int_or_none(data.get("popularity")),
        )
    raise ValidationException(f"Unsupported entity type: {entity_type}")
