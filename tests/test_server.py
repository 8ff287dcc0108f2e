"""Tests for server module."""

import json

import pytest
import responses

from conftest import BASE, FakeSurface, search_payload, song
from music_catalog_mcp import server
from music_catalog_mcp.models import (
    AddedToCollection,
    CatalogItem,
    FoundButNotAdded,
    MutationResult,
    NotFoundInCatalog,
    ResolutionRequest,
    SyncReport,
)

SEARCH_URL = f"{BASE}/catalog/us/search"
KARMA = song("1097861387", "Karma Police", "Radiohead", album="OK Computer", duration=264066)


@pytest.fixture
def configured(saved_tokens, sample_config):
    """Saved tokens plus preferences that turn off all waiting."""
    sample_config["preferences"] = {"settle_delay": 0, "request_delay": 0}
    with open(saved_tokens / "config.json", "w") as f:
        json.dump(sample_config, f)
    return saved_tokens


@pytest.fixture
def surface(monkeypatch):
    """Pretend to be on macOS with a fake Music library."""
    fake = FakeSurface(visible={"Karma Police"})
    monkeypatch.setattr(server, "APPLESCRIPT_AVAILABLE", True)
    monkeypatch.setattr(server, "_local_surface", lambda: fake)
    return fake


class TestFormatDuration:
    """Tests for format_duration function."""

    @pytest.mark.parametrize("ms,expected", [
        (264066, "4:24"),
        (59999, "0:59"),
        (60000, "1:00"),
        (0, ""),
        (None, ""),
        (-5, ""),
    ])
    def test_format(self, ms, expected):
        assert server.format_duration(ms) == expected


class TestFormatItem:
    def test_full(self):
        item = CatalogItem.from_api(KARMA)
        assert server.format_item(item) == "Karma Police - Radiohead (4:24) OK Computer [1997] 1097861387"

    def test_minimal(self):
        assert server.format_item(CatalogItem(id="1", title="Creep", artist="Radiohead")) == "Creep - Radiohead 1"


class TestFormatSyncReport:
    """Tests for format_sync_report function."""

    def test_all_sections(self):
        creep = CatalogItem(id="1", title="Creep", artist="Radiohead")
        hurt = CatalogItem(id="2", title="Hurt", artist="Johnny Cash")
        report = SyncReport("Mix", [
            AddedToCollection(ResolutionRequest("Creep", "Radiohead"), creep, "Creep"),
            FoundButNotAdded(ResolutionRequest("Hurt", "Johnny Cash"), hurt),
            NotFoundInCatalog(ResolutionRequest("Zzz", "Nobody")),
        ])

        result = server.format_sync_report(report)

        assert "✓ Added to 'Mix' (1):\n  Creep - Radiohead" in result
        assert "⏳ In your library but not yet in the playlist (1):" in result
        assert "Hurt - Johnny Cash (requested: Hurt - Johnny Cash)" in result
        assert "✗ Not found in catalog (1):\n  Zzz - Nobody" in result
        assert "Retry in a few moments" in result

    def test_empty(self):
        assert server.format_sync_report(SyncReport("Mix")) == "No tracks were processed"


class TestParseRequests:
    """Tests for _parse_requests function."""

    def test_valid(self):
        requests, error = server._parse_requests(
            '[{"track": "Creep", "artist": "Radiohead"}, {"name": "Hurt"}]'
        )
        assert error is None
        assert requests == [ResolutionRequest("Creep", "Radiohead"), ResolutionRequest("Hurt")]

    def test_numeric_values_become_strings(self):
        requests, error = server._parse_requests('[{"track": 1999, "artist": "Prince"}, {"track": "22", "artist": 311}]')
        assert error is None
        assert requests == [ResolutionRequest("1999", "Prince"), ResolutionRequest("22", "311")]

    def test_null_artist(self):
        requests, error = server._parse_requests('[{"track": "Creep", "artist": null}]')
        assert error is None
        assert requests == [ResolutionRequest("Creep")]

    @pytest.mark.parametrize("tracks,message", [
        ("not json", "Invalid JSON"),
        ('{"track": "Creep"}', "must be a JSON array"),
        ("[]", "tracks is empty"),
        ('["Creep"]', "track #1 must be an object"),
        ('[{"track": "Creep"}, {"artist": "Radiohead"}]', "track #2 is missing 'track'"),
        ('[{"track": ["Creep"]}]', "track #1 'track' must be a string"),
        ('[{"track": "Creep", "artist": {"name": "Radiohead"}}]', "track #1 'artist' must be a string"),
        ('[{"track": true}]', "track #1 'track' must be a string"),
    ])
    def test_errors(self, tracks, message):
        requests, error = server._parse_requests(tracks)
        assert requests == []
        assert error.startswith("Error:")
        assert message in error

    def test_batch_limit(self):
        tracks = json.dumps([{"track": f"Song {i}"} for i in range(server.MAX_TRACKS_PER_BATCH + 1)])
        _, error = server._parse_requests(tracks)
        assert "at most" in error


class TestSearchCatalog:
    """Tests for search_catalog tool."""

    @responses.activate
    def test_returns_songs(self, configured):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)

        result = server.search_catalog("Karma Police", 5)

        assert "=== 1 Songs ===" in result
        assert "Karma Police - Radiohead (4:24) OK Computer [1997] 1097861387" in result
        assert "music.apple.com/us/song/1097861387" in result

    @responses.activate
    def test_no_results(self, configured):
        responses.add(responses.GET, SEARCH_URL, json={"results": {}}, status=200)
        assert "No results found for" in server.search_catalog("zzzqqq")

    def test_not_configured(self, mock_config_dir):
        result = server.search_catalog("Creep")
        assert result.startswith("Error: Apple Music catalog access is not configured")

    def test_hand_edited_token_file(self, mock_config_dir, mock_developer_token):
        (mock_config_dir / "developer_token.json").write_text(json.dumps({"token": mock_developer_token}))
        result = server.search_catalog("Creep")
        assert result.startswith("Error: Apple Music catalog access is not configured")

    @responses.activate
    def test_api_error(self, configured):
        responses.add(responses.GET, SEARCH_URL, json={"errors": []}, status=500)
        assert "Apple Music API error: 500" in server.search_catalog("Creep")


class TestGetSongDetails:
    """Tests for get_song_details tool."""

    @responses.activate
    def test_found(self, configured):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)

        result = server.get_song_details("1097861387")

        assert "Name: Karma Police" in result
        assert "Duration: 4:24" in result
        assert "Catalog ID: 1097861387" in result

    @responses.activate
    def test_not_found(self, configured):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/999", json={}, status=404)
        assert "not found in catalog" in server.get_song_details("999")


class TestGetSongsDetails:
    """Tests for get_songs_details tool."""

    @responses.activate
    def test_with_library_status(self, configured):
        creep = song("1", "Creep", "Radiohead", album="Pablo Honey", duration=238000, release_date="1992-09-21")
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)
        responses.add(
            responses.GET,
            f"{BASE}/catalog/us/songs/1097861387/library",
            json={"data": [{"id": "i.KP", "type": "library-songs"}]},
            status=200,
        )
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1", json={"data": [creep]}, status=200)
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1/library", json={}, status=404)

        result = server.get_songs_details("1097861387, 1, 1097861387")

        assert result.splitlines() == [
            "=== 2 of 2 Songs ===",
            "Karma Police - Radiohead (4:24) OK Computer [1997] 1097861387 ✓ in library",
            "Creep - Radiohead (3:58) Pablo Honey [1992] 1 (not in library)",
        ]

    @responses.activate
    def test_unknown_ids_listed_separately(self, configured):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)
        responses.add(
            responses.GET, f"{BASE}/catalog/us/songs/1097861387/library", json={"data": []}, status=200
        )
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/999", json={}, status=404)

        result = server.get_songs_details("1097861387,999")

        assert result.startswith("=== 1 of 2 Songs ===")
        assert "✗ Not found in catalog (1):\n  999" in result

    @responses.activate
    def test_lookup_error_is_per_song(self, configured):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1", body="<html>oops</html>", status=200)
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)
        responses.add(
            responses.GET, f"{BASE}/catalog/us/songs/1097861387/library", json={}, status=500
        )

        result = server.get_songs_details("1,1097861387")

        assert "Karma Police - Radiohead" in result
        assert "(library status unknown)" in result
        assert "⚠️ Lookup failed (1):\n  1: " in result

    @responses.activate
    def test_catalog_only_shows_no_library_status(self, mock_config_dir, monkeypatch, mock_developer_token):
        monkeypatch.setenv("APPLE_MUSIC_DEVELOPER_TOKEN", mock_developer_token)
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)

        result = server.get_songs_details("1097861387")

        assert result.endswith("1097861387")
        assert len(responses.calls) == 1

    @pytest.mark.parametrize("song_ids,message", [
        ("", "song_ids is empty"),
        (" , ,", "song_ids is empty"),
        (",".join(str(i) for i in range(server.MAX_SONGS_PER_LOOKUP + 1)), "at most"),
    ])
    def test_invalid_input(self, configured, song_ids, message):
        result = server.get_songs_details(song_ids)
        assert result.startswith("Error:")
        assert message in result

    def test_not_configured(self, mock_config_dir):
        assert server.get_songs_details("1").startswith("Error: Apple Music catalog access is not configured")


class TestResolveTrack:
    """Tests for resolve_track tool."""

    @responses.activate
    def test_found(self, configured):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        result = server.resolve_track("Karma Police", "Radiohead")
        assert result.startswith("Found (score 1.00): Karma Police - Radiohead")

    @responses.activate
    def test_not_found(self, configured):
        responses.add(responses.GET, SEARCH_URL, json={"results": {}}, status=200)
        result = server.resolve_track("Zzzqqq", "Nobody")
        assert result.startswith("Not found: Zzzqqq - Nobody")


class TestAddCatalogTrackToLibrary:
    """Tests for add_catalog_track_to_library tool."""

    @responses.activate
    def test_adds(self, configured):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)

        result = server.add_catalog_track_to_library("1097861387")

        assert result == "Added to library: Karma Police - Radiohead"

    @responses.activate
    def test_requires_user_token(self, mock_config_dir, monkeypatch, mock_developer_token):
        monkeypatch.setenv("APPLE_MUSIC_DEVELOPER_TOKEN", mock_developer_token)

        result = server.add_catalog_track_to_library("1097861387")

        assert result.startswith("Error: User token required")
        assert "music-catalog-mcp authorize" in result
        assert len(responses.calls) == 0


class TestSyncTracksToPlaylist:
    """Tests for sync_tracks_to_playlist tool."""

    def test_requires_macos(self, configured, monkeypatch):
        monkeypatch.setattr(server, "APPLESCRIPT_AVAILABLE", False)
        result = server.sync_tracks_to_playlist("Mix", '[{"track": "Creep"}]')
        assert "requires macOS" in result

    def test_invalid_tracks(self, configured, surface):
        assert server.sync_tracks_to_playlist("Mix", "[]") == "Error: tracks is empty"

    @responses.activate
    def test_syncs(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)

        result = server.sync_tracks_to_playlist(
            "Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]'
        )

        assert "✓ Added to 'Mix' (1):" in result
        assert surface.created == ["Mix"]
        assert surface.calls == [("Mix", "Karma Police")]

    @responses.activate
    def test_existing_playlist_only(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)

        server.sync_tracks_to_playlist(
            "Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]', create_if_missing=False
        )

        assert surface.created == []
        assert surface.calls == [("Mix", "Karma Police")]

    @responses.activate
    def test_nothing_found_creates_no_playlist(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, json={"results": {}}, status=200)

        result = server.sync_tracks_to_playlist("Mix", '[{"track": "Zzzqqq", "artist": "Nobody"}]')

        assert "✗ Not found in catalog (1):" in result
        assert surface.created == []
        assert surface.calls == []

    @responses.activate
    def test_library_add_failure(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        responses.add(responses.POST, f"{BASE}/me/library", json={}, status=500)

        result = server.sync_tracks_to_playlist(
            "Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]'
        )

        assert result.startswith("Error: Found 1 track(s) but failed to add them to your library")
        assert surface.created == []
        assert surface.calls == []

    @responses.activate
    def test_playlist_creation_failure(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)
        surface.ensure_result = MutationResult(False, "denied")

        result = server.sync_tracks_to_playlist(
            "Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]'
        )

        assert result == "Error: Could not create playlist 'Mix': denied"
        assert surface.calls == []

    @responses.activate
    def test_html_response_is_reported_per_track(self, configured, surface):
        responses.add(responses.GET, SEARCH_URL, body="<html>Bad Gateway</html>", status=200)

        result = server.sync_tracks_to_playlist("Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]')

        assert "✗ Not found in catalog (1):" in result
        assert surface.created == []

    @responses.activate
    def test_no_user_token(self, mock_config_dir, surface, monkeypatch, mock_developer_token):
        monkeypatch.setenv("APPLE_MUSIC_DEVELOPER_TOKEN", mock_developer_token)
        result = server.sync_tracks_to_playlist("Mix", '[{"track": "Creep"}]')
        assert result.startswith("Error: User token required")
        assert len(responses.calls) == 0


class TestAddCatalogTrackToPlaylist:
    """Tests for add_catalog_track_to_playlist tool."""

    @responses.activate
    def test_adds(self, configured, surface):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/1097861387", json={"data": [KARMA]}, status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)

        result = server.add_catalog_track_to_playlist("Mix", "1097861387")

        assert result == "Added Karma Police - Radiohead to 'Mix'"

    @responses.activate
    def test_unknown_id(self, configured, surface):
        responses.add(responses.GET, f"{BASE}/catalog/us/songs/999", json={}, status=404)
        assert "not found in catalog" in server.add_catalog_track_to_playlist("Mix", "999")


class TestCreateCatalogPlaylist:
    """Tests for create_catalog_playlist tool."""

    @responses.activate
    def test_creates(self, configured):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(KARMA), status=200)
        responses.add(responses.POST, f"{BASE}/me/library", status=202)
        responses.add(
            responses.GET,
            f"{BASE}/catalog/us/songs/1097861387/library",
            json={"data": [{"id": "i.KP", "type": "library-songs"}]},
            status=200,
        )
        responses.add(
            responses.POST,
            f"{BASE}/me/library/playlists",
            json={"data": [{"id": "p.MIX"}]},
            status=201,
        )

        result = server.create_catalog_playlist("Mix", '[{"track": "Karma Police", "artist": "Radiohead"}]')

        assert result.startswith("Created playlist 'Mix' (p.MIX) with 1 track(s)")
        body = json.loads(responses.calls[-1].request.body)
        assert body["relationships"]["tracks"]["data"] == [{"id": "i.KP", "type": "library-songs"}]

    @responses.activate
    def test_nothing_resolved(self, configured):
        responses.add(responses.GET, SEARCH_URL, json={"results": {}}, status=200)

        result = server.create_catalog_playlist("Mix", '[{"track": "Zzzqqq", "artist": "Nobody"}]')

        assert result.startswith("Error: No tracks found in catalog")
        assert "✗ Not found in catalog (1):" in result

    def test_name_required(self, configured):
        assert server.create_catalog_playlist("  ", '[{"track": "Creep"}]') == "Error: playlist_name is required"


class TestCheckAuthStatus:
    """Tests for check_auth_status tool."""

    @responses.activate
    def test_all_ok(self, configured):
        responses.add(responses.GET, SEARCH_URL, json=search_payload(), status=200)

        result = server.check_auth_status()

        assert "Developer Token: OK" in result
        assert "Music User Token: OK" in result
        assert "Storefront: us" in result
        assert "API Connection: OK" in result

    @responses.activate
    def test_nothing_configured(self, mock_config_dir):
        result = server.check_auth_status()

        assert "Developer Token: MISSING" in result
        assert "Music User Token: MISSING" in result
        assert "API Connection" not in result
        assert len(responses.calls) == 0
