from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003

import httpx
import pytest

from tests.support.http import body_of, make_client_factory, uncached
from tests.support.media import rating, review, watchlist_item
from totalrecall.adapters.trakt import TRAKT_BASE_URL, TraktAPIError, TraktSource
from totalrecall.config import CredentialStore
from totalrecall.config.settings import TraktConfig
from totalrecall.domain.model import MediaIds, MediaType, NormalizedStatus
from totalrecall.domain.ports.sources import AuthenticationError, PartialMutationError

HEAT = {"title": "Heat", "year": 1995, "ids": {"trakt": 1, "slug": "heat-1995", "imdb": "tt0113277", "tmdb": 949}}
SETTINGS = {"user": {"username": "Sam", "ids": {"slug": "sam"}}}
ACCEPTED = {"added": {"movies": 1}, "not_found": {"movies": []}}


def _source(
    tmp_path: Path,
    handler: object,
    *,
    token: str | None = "token",
) -> TraktSource:
    credentials = CredentialStore(tmp_path / "credentials.toml")
    if token is not None:
        credentials.set_access_token("trakt", token)
    return TraktSource(
        config=TraktConfig(client_id="client", client_secret="secret"),
        credentials=credentials,
        resilience=uncached("trakt", TRAKT_BASE_URL),
        client_factory=make_client_factory(handler),  # type: ignore[arg-type]
    )


def test_authenticate_requires_a_stored_token(tmp_path: Path) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=SETTINGS)

    source = _source(tmp_path, handler, token=None)

    with pytest.raises(AuthenticationError, match="trakt_access_token"):
        asyncio.run(source.authenticate())
    assert requests == []
    assert not source.is_authenticated()


def test_authenticate_sends_api_headers(tmp_path: Path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SETTINGS)

    source = _source(tmp_path, handler)
    asyncio.run(source.authenticate())

    assert source.is_authenticated()
    request = seen[0]
    assert request.url.path == "/users/settings"
    assert request.headers["trakt-api-key"] == "client"
    assert request.headers["trakt-api-version"] == "2"
    assert request.headers["Authorization"] == "Bearer token"


def test_rejected_token_raises_authentication_error(tmp_path: Path) -> None:
    source = _source(tmp_path, lambda _: httpx.Response(401, text="invalid token"))

    with pytest.raises(AuthenticationError):
        asyncio.run(source.authenticate())


def test_watchlist_parses_movies_and_episodes(tmp_path: Path) -> None:
    payload = [
        {"type": "movie", "listed_at": "2024-01-01T12:00:00.000Z", "movie": HEAT},
        {
            "type": "episode",
            "listed_at": "2024-01-02T12:00:00.000Z",
            "episode": {"season": 1, "number": 2, "title": "Pilot", "ids": {"trakt": 7}},
            "show": {"title": "Show", "year": 2010, "ids": {"trakt": 3}},
        },
        {"type": "person", "listed_at": "2024-01-03T12:00:00.000Z"},
    ]
    source = _source(tmp_path, lambda _: httpx.Response(200, json=payload))

    items = asyncio.run(source.get_watchlist())

    assert len(items) == 2
    movie, episode = items
    assert movie.imdb_id == "tt0113277"
    assert movie.ids is not None
    assert (movie.ids.trakt_id, movie.ids.tmdb_id, movie.ids.slug) == (1, 949, "heat-1995")
    assert movie.date_added == datetime(2024, 1, 1, 12, tzinfo=UTC)
    assert movie.status is NormalizedStatus.WATCHLIST
    assert episode.title == "Show: Pilot"
    assert episode.year == 2010
    assert episode.media_type == MediaType.for_episode(1, 2)
    assert episode.imdb_id == ""


def test_history_follows_pagination(tmp_path: Path) -> None:
    pages: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params["page"]
        pages.append(page)
        assert request.url.params["limit"] == "100"
        entry = {"type": "movie", "watched_at": f"2024-01-0{page}T20:00:00.000Z", "movie": HEAT}
        return httpx.Response(200, json=[entry], headers={"X-Pagination-Page-Count": "2"})

    source = _source(tmp_path, handler)

    entries = asyncio.run(source.get_watch_history())

    assert pages == ["1", "2"]
    assert [entry.watched_at.day for entry in entries] == [1, 2]


def test_reviews_are_read_from_the_user_profile(tmp_path: Path) -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/users/settings":
            return httpx.Response(200, json=SETTINGS)
        comment = {
            "id": 11,
            "comment": "Still the best heist film",
            "spoiler": True,
            "review": True,
            "created_at": "2024-02-01T09:00:00.000Z",
        }
        return httpx.Response(200, json=[{"type": "movie", "movie": HEAT, "comment": comment}])

    source = _source(tmp_path, handler)

    reviews = asyncio.run(source.get_reviews())

    assert paths == ["/users/settings", "/users/sam/comments/reviews/all"]
    assert [(item.content, item.is_spoiler) for item in reviews] == [("Still the best heist film", True)]


def test_watchlist_mutation_sends_grouped_ids(tmp_path: Path) -> None:
    bodies: list[object] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/sync/watchlist"
        bodies.append(body_of(request))
        return httpx.Response(201, json=ACCEPTED)

    source = _source(tmp_path, handler)
    item = watchlist_item("simkl", ids=MediaIds(imdb_id="tt0113277", trakt_id=1, simkl_id=9))
    show = watchlist_item("simkl", imdb="tt0903747", media_type=MediaType.show())

    asyncio.run(source.add_to_watchlist([item, show]))

    assert bodies == [
        {
            "movies": [{"ids": {"imdb": "tt0113277", "trakt": 1}}],
            "shows": [{"ids": {"imdb": "tt0903747"}}],
            "episodes": [],
        }
    ]


def test_empty_mutation_makes_no_request(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request {request.url}")

    source = _source(tmp_path, handler)

    asyncio.run(source.set_ratings([]))


def test_not_found_items_raise_partial_mutation_error(tmp_path: Path) -> None:
    reply = {"added": {"movies": 1}, "not_found": {"movies": [{"ids": {"imdb": "tt0000002"}}]}}
    source = _source(tmp_path, lambda _: httpx.Response(201, json=reply))

    with pytest.raises(PartialMutationError) as excinfo:
        asyncio.run(source.set_ratings([rating("simkl", 8), rating("simkl", 6, imdb="tt0000002")]))

    assert (excinfo.value.failed, excinfo.value.total) == (1, 2)
    assert excinfo.value.source == "trakt"


def test_server_error_raises_trakt_api_error(tmp_path: Path) -> None:
    source = _source(tmp_path, lambda _: httpx.Response(503, text="maintenance"))

    with pytest.raises(TraktAPIError) as excinfo:
        asyncio.run(source.get_ratings())

    assert excinfo.value.status == 503
    assert excinfo.value.retryable


def test_unexpected_body_raises_trakt_api_error(tmp_path: Path) -> None:
    source = _source(tmp_path, lambda _: httpx.Response(200, json={"not": "a list"}))

    with pytest.raises(TraktAPIError, match="Unexpected Trakt response"):
        asyncio.run(source.get_watchlist())


def test_rejected_reviews_are_counted(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = body_of(request)
        assert isinstance(body, dict)
        if body["comment"] == "too short":
            return httpx.Response(422, json={"errors": {"comment": ["must be at least 5 words"]}})
        return httpx.Response(201, json={"id": 1})

    source = _source(tmp_path, handler)

    with pytest.raises(PartialMutationError) as excinfo:
        asyncio.run(source.set_reviews([review("simkl", "too short"), review("simkl", "a long enough review text")]))

    assert (excinfo.value.failed, excinfo.value.total) == (1, 2)


def test_lookup_ids_searches_by_title_and_year(tmp_path: Path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"type": "movie", "score": 1000.0, "movie": HEAT}])

    source = _source(tmp_path, handler)

    found = asyncio.run(source.lookup_ids("Heat,  ", 1995, MediaType.movie()))

    assert found is not None
    assert (found.imdb_id, found.trakt_id, found.title) == ("tt0113277", 1, "Heat")
    request = seen[0]
    assert request.url.path == "/search/movie"
    assert request.url.params["query"] == "Heat"
    assert request.url.params["years"] == "1995"


def test_lookup_skips_episodes_and_other_kinds(tmp_path: Path) -> None:
    show_hit = [{"type": "show", "show": {"title": "Heat", "year": 1995, "ids": {"trakt": 2}}}]
    source = _source(tmp_path, lambda _: httpx.Response(200, json=show_hit))

    assert asyncio.run(source.lookup_ids("Heat", 1995, MediaType.for_episode(1, 1))) is None
    assert asyncio.run(source.lookup_ids("Heat", 1995, MediaType.movie())) is None


def test_lookup_by_imdb_id_returns_title_and_year(tmp_path: Path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"type": "movie", "movie": HEAT}])

    source = _source(tmp_path, handler)

    found = asyncio.run(source.lookup_by_imdb_id("tt0113277", MediaType.movie()))

    assert found is not None
    title, year, ids = found
    assert (title, year, ids.trakt_id) == ("Heat", 1995, 1)
    assert seen[0].url.path == "/search/imdb/tt0113277"
    assert seen[0].url.params["type"] == "movie"


def test_cleanup_closes_the_client(tmp_path: Path) -> None:
    source = _source(tmp_path, lambda _: httpx.Response(200, json=[]))

    asyncio.run(source.get_ratings())
    asyncio.run(source.cleanup())

    assert source._client is None  # noqa: SLF001  # type: ignore[reportPrivateUsage]


def test_extract_ids_reads_native_blob(tmp_path: Path) -> None:
    source = _source(tmp_path, lambda _: httpx.Response(200, json=[]))

    ids = source.extract_ids("tt0113277", {"trakt": "1", "tmdb": 949})

    assert ids is not None
    assert (ids.imdb_id, ids.trakt_id, ids.tmdb_id) == ("tt0113277", 1, 949)
    assert source.extract_ids(None, {}) is None
