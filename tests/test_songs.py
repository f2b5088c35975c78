from app.flock.db import session_scope
from app.flock.modules.songs.library import DEFAULT_HYMNS, default_songs, seed_songs_for_tenant
from app.flock.modules.songs.service import validate_song_payload


def test_validate_song_payload():
    assert validate_song_payload({"title": "Ok", "default_tempo": 120}) == []
    assert "default_tempo must be between 20 and 300." in validate_song_payload({"title": "Ok", "default_tempo": 5})
    assert "Title is required." in validate_song_payload({})


def test_default_library_is_public_domain():
    songs = default_songs()
    assert len(songs) == len(DEFAULT_HYMNS)
    assert all(s["is_public_domain"] and s["hymnal_code"] == "BH91" for s in songs)


def test_seed_library_is_idempotent(app, tenant_id):
    with session_scope(app, tenant_id=tenant_id) as s:
        first = seed_songs_for_tenant(s, tenant_id)
    with session_scope(app, tenant_id=tenant_id) as s:
        second = seed_songs_for_tenant(s, tenant_id)
    assert first["created"] == len(DEFAULT_HYMNS)
    assert second["created"] == 0
    assert second["updated"] == len(DEFAULT_HYMNS)


def test_bulk_upsert_by_ccli(api):
    r = api.post(
        "/api/songs/bulk",
        json={
            "songs": [
                {"title": "Modern Song", "ccli_number": "7001", "author": "A"},
                {"title": "Modern Song (renamed)", "ccli_number": "7001", "author": "B"},
                {"author": "no title"},
            ]
        },
    )
    assert r.status_code == 200
    assert r.json["created"] == 1
    assert r.json["updated"] == 1
    assert r.json["errors"] == [{"title": None, "error": "Title is required."}]

    songs = api.get("/api/songs").json
    assert songs["total"] == 1
    assert songs["songs"][0]["title"] == "Modern Song (renamed)"


def test_hymn_search_ranks_title_hits_first(api):
    api.post("/api/songs", json={"title": "Grace Greater Than Our Sin"})
    api.post("/api/songs", json={"title": "Be Thou My Vision", "lyrics": "high King of heaven, grace"})
    rows = api.get("/api/songs/search?query=grace").json["songs"]
    assert [r["title"] for r in rows] == ["Grace Greater Than Our Sin", "Be Thou My Vision"]
    assert api.get("/api/songs/search?query=").status_code == 400


def test_delete_song_unlinks_service_items(api):
    song = api.post("/api/songs", json={"title": "Linked Song", "ccli_number": "123"}).json
    bulletin = api.post("/api/bulletins", json={"service_date": "2026-11-01"}).json
    item = api.post(
        f"/api/bulletins/{bulletin['id']}/items",
        json={"item_type": "song", "title": "Linked Song", "ccli_number": "123", "song_id": song["id"]},
    ).json
    assert item["song_id"] == song["id"]

    r = api.delete(f"/api/songs/{song['id']}")
    assert r.json == {"success": True, "unlinked_service_items": 1}
    items = api.get(f"/api/bulletins/{bulletin['id']}/items").json["service_items"]
    assert items[0]["song_id"] is None
