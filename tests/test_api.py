"""
End-to-end API tests against local storage
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


def _create_gallery(client, name="Smith Wedding", **extra):
    res = client.post("/api/galleries", json={"name": name, **extra})
    assert res.status_code == 200, res.text
    return res.json()["gallery"]["id"]


def _add_images(client, gid, count):
    ids = []
    for i in range(count):
        res = client.post(
            f"/api/galleries/{gid}/images",
            json={"key": f"galleries/{gid}/photo-{i}.jpg", "width": 1200, "height": 800, "format": "JPG", "file_size_bytes": 1536},
        )
        assert res.status_code == 200, res.text
        ids.append(res.json()["image"]["id"])
    return ids


class TestGalleries:
    def test_create_and_fetch(self, client):
        gid = _create_gallery(client, description="June 2024", mode="collaboration")
        ids = _add_images(client, gid, 3)
        assert ids == [0, 1, 2]

        res = client.get(f"/api/galleries/{gid}", params={"last_viewed": 1})
        body = res.json()
        assert res.status_code == 200
        assert body["gallery"]["name"] == "Smith Wedding"
        assert body["gallery"]["mode"] == "collaboration"
        assert body["scroll_to"] == 1
        assert body["images"][0]["url"] == f"/static/galleries/{gid}/photo-0_thumb.jpg"
        assert body["images"][0]["format"] == "jpg"
        assert body["images"][0]["file_size_label"] == "1.5 KB"

    def test_empty_gallery_has_message(self, client):
        gid = _create_gallery(client)
        body = client.get(f"/api/galleries/{gid}").json()
        assert body["images"] == []
        assert body["scroll_to"] is None
        assert body["empty_message"]

    def test_unknown_gallery(self, client):
        assert client.get("/api/galleries/nope").status_code == 404

    def test_validation(self, client):
        assert client.post("/api/galleries", json={"name": ""}).status_code == 422
        assert client.post("/api/galleries", json={"name": "x" * 101}).status_code == 422
        assert client.post("/api/galleries", json={"name": "ok", "description": "d" * 501}).status_code == 422


class TestViewerApi:
    def test_navigation_flow(self, client):
        gid = _create_gallery(client)
        _add_images(client, gid, 3)

        opened = client.post(f"/api/galleries/{gid}/viewer", json={"index": 1}).json()
        sid = opened["session_id"]
        assert opened["open"] is True
        assert opened["active_index"] == 1
        assert opened["direction"] == "none"
        assert opened["active_image"]["url"] == f"/static/galleries/{gid}/photo-1.jpg"

        step = client.post(f"/api/viewer/{sid}/next").json()
        assert (step["active_index"], step["direction"], step["moved"]) == (2, "forward", True)

        step = client.post(f"/api/viewer/{sid}/key", json={"key": "ArrowRight"}).json()
        assert (step["active_index"], step["handled"]) == (2, False)

        step = client.post(f"/api/viewer/{sid}/previous").json()
        assert (step["active_index"], step["direction"]) == (1, "backward")

        closed = client.post(f"/api/viewer/{sid}/key", json={"key": "Escape"}).json()
        assert closed["open"] is False
        assert closed["last_viewed_id"] == 1
        assert client.get(f"/api/viewer/{sid}").status_code == 404

        grid = client.get(f"/api/galleries/{gid}", params={"last_viewed": closed["last_viewed_id"]}).json()
        assert grid["scroll_to"] == 1

    def test_close_returns_marker(self, client):
        gid = _create_gallery(client)
        _add_images(client, gid, 2)
        sid = client.post(f"/api/galleries/{gid}/viewer", json={"index": 0}).json()["session_id"]
        client.post(f"/api/viewer/{sid}/jump", json={"index": 1})
        res = client.post(f"/api/viewer/{sid}/close").json()
        assert res["last_viewed_id"] == 1

    def test_empty_gallery_does_not_open(self, client):
        gid = _create_gallery(client)
        res = client.post(f"/api/galleries/{gid}/viewer", json={"index": 3}).json()
        assert res["session_id"] is None
        assert res["open"] is False
        assert res["empty_message"]

    def test_unknown_session(self, client):
        assert client.post("/api/viewer/nope/next").status_code == 404


class TestShareApi:
    def test_protected_download_link(self, client):
        gid = _create_gallery(client)
        _add_images(client, gid, 2)
        created = client.post(f"/api/galleries/{gid}/share", json={"password": "pw", "permissions": "view_download"}).json()
        token = created["token"]
        assert created["protected"] is True
        assert created["link"].endswith(f"/share/{token}")

        assert client.get(f"/api/share/{token}").status_code == 401
        assert client.get(f"/api/share/{token}", headers={"X-Share-Password": "bad"}).status_code == 403

        res = client.get(f"/api/share/{token}", headers={"X-Share-Password": "pw"})
        body = res.json()
        assert res.status_code == 200
        assert body["permissions"]["download"] is True
        assert body["permissions"]["comment"] is False
        assert len(body["images"]) == 2

        dl = client.get(f"/api/share/{token}/download/1", headers={"X-Share-Password": "pw"}).json()
        assert dl["url"] == f"/static/galleries/{gid}/photo-1.jpg"

    def test_view_only_blocks_download(self, client):
        gid = _create_gallery(client)
        _add_images(client, gid, 1)
        token = client.post(f"/api/galleries/{gid}/share", json={}).json()["token"]
        assert client.get(f"/api/share/{token}/download/0").status_code == 403

    def test_gallery_setting_blocks_download(self, client):
        gid = _create_gallery(client, settings={"allow_download": False})
        _add_images(client, gid, 1)
        token = client.post(f"/api/galleries/{gid}/share", json={"permissions": "view_download"}).json()["token"]
        assert client.get(f"/api/share/{token}").json()["permissions"]["download"] is False
        assert client.get(f"/api/share/{token}/download/0").status_code == 403

    def test_expired_link(self, client):
        gid = _create_gallery(client)
        token = client.post(f"/api/galleries/{gid}/share", json={"expires_at": "2001-01-01T00:00:00Z"}).json()["token"]
        assert client.get(f"/api/share/{token}").status_code == 410

    def test_share_viewer(self, client):
        gid = _create_gallery(client)
        _add_images(client, gid, 3)
        token = client.post(f"/api/galleries/{gid}/share", json={}).json()["token"]
        res = client.post(f"/api/share/{token}/viewer", json={"index": 2}).json()
        assert res["active_index"] == 2

    def test_share_viewer_sessions_are_capped(self, client, monkeypatch):
        from utils.viewer import viewer_sessions

        monkeypatch.setattr(viewer_sessions, "max_sessions", 5)
        gid = _create_gallery(client)
        _add_images(client, gid, 2)
        token = client.post(f"/api/galleries/{gid}/share", json={}).json()["token"]
        sids = [client.post(f"/api/share/{token}/viewer", json={}).json()["session_id"] for _ in range(20)]
        assert len(viewer_sessions) == 5
        assert client.get(f"/api/viewer/{sids[0]}").status_code == 404
        assert client.get(f"/api/viewer/{sids[-1]}").status_code == 200

    def test_unknown_token(self, client):
        assert client.get("/api/share/unknown-token-123").status_code == 404


class TestUploadApi:
    def test_presign_requires_storage(self, client):
        res = client.post("/api/uploads/presign", json={"filename": "a.jpg", "content_type": "image/jpeg"})
        assert res.status_code == 503

    def test_presign(self, client, r2):
        res = client.post(
            "/api/uploads/presign",
            json={"filename": "My Photo.jpg", "content_type": "image/jpeg", "size_bytes": 10485760},
        )
        body = res.json()
        assert res.status_code == 200
        assert re.fullmatch(r"my_photo_\d{13}\.jpg", body["key"])
        assert body["fields"]["Content-Length"] == "10485760"

    @pytest.mark.parametrize("payload", [
        {"filename": "a.gif", "content_type": "image/gif"},
        {"filename": "a.jpg", "content_type": "image/jpeg", "size_bytes": 60 * 1024 * 1024},
    ])
    def test_presign_validation(self, client, payload):
        assert client.post("/api/uploads/presign", json=payload).status_code == 422

    def test_direct_upload_into_gallery(self, client, local_storage, png_bytes):
        gid = _create_gallery(client)
        res = client.post(
            "/api/uploads",
            files=[("files", ("Beach Day.png", png_bytes, "image/png"))],
            data={"gallery_id": gid},
        )
        body = res.json()
        assert res.status_code == 200, res.text
        item = body["uploaded"][0]
        assert re.fullmatch(r"beach_day_\d{13}\.png", item["key"])
        assert item["image_id"] == 0
        stem = item["key"][:-4]
        assert (local_storage / item["key"]).exists()
        assert (local_storage / f"{stem}_thumb.png").exists()
        assert (local_storage / f"{stem}_preview.png").exists()

        images = client.get(f"/api/galleries/{gid}").json()["images"]
        assert images[0]["width"] == 2000
        assert images[0]["format"] == "png"

    def test_rejects_non_image(self, client):
        res = client.post("/api/uploads", files=[("files", ("notes.txt", b"hello world, not an image", "text/plain"))])
        assert res.status_code == 415

    def test_rejects_fake_jpeg_before_storing(self, client, local_storage):
        gid = _create_gallery(client)
        fake = b"\xff\xd8\xff\xe0" + b"definitely not jpeg data" * 10
        res = client.post(
            "/api/uploads",
            files=[("files", ("x.jpg", fake, "image/jpeg"))],
            data={"gallery_id": gid},
        )
        assert res.status_code == 415
        assert sorted(p.name for p in local_storage.iterdir()) == ["galleries"]
        assert client.get(f"/api/galleries/{gid}").json()["images"] == []

    def test_gallery_storage_failure_is_503(self, client, monkeypatch, png_bytes):
        import routers.upload as upload_router
        from utils.storage import StorageError

        def broken(gallery_id):
            raise StorageError("bucket unreachable")

        monkeypatch.setattr(upload_router, "load_gallery", broken)
        res = client.post(
            "/api/uploads",
            files=[("files", ("a.png", png_bytes, "image/png"))],
            data={"gallery_id": "g1"},
        )
        assert res.status_code == 503

    def test_add_image_failure_is_503(self, client, monkeypatch, png_bytes):
        import routers.upload as upload_router
        from utils.storage import StorageError

        gid = _create_gallery(client)

        def broken(gallery, payload):
            raise StorageError("bucket unreachable")

        monkeypatch.setattr(upload_router, "add_image", broken)
        res = client.post(
            "/api/uploads",
            files=[("files", ("a.png", png_bytes, "image/png"))],
            data={"gallery_id": gid},
        )
        assert res.status_code == 503


class TestPhotosApi:
    def test_tiered_url(self, client):
        res = client.get("/api/photos/url/shoot/a.jpg", params={"size": "thumbnail"})
        assert res.json()["url"] == "/static/shoot/a_thumb.jpg"
        assert client.get("/api/photos/url/shoot/a.jpg", params={"size": "huge"}).status_code == 422

    def test_exists(self, client, local_storage):
        (local_storage / "a.jpg").write_bytes(b"x")
        assert client.get("/api/photos/exists/a.jpg").json() == {"exists": True, "status": "found"}
        assert client.get("/api/photos/exists/b.jpg").json() == {"exists": False, "status": "not_found"}

    def test_delete_with_variants(self, client, local_storage):
        for name in ("a.jpg", "a_thumb.jpg", "a_preview.jpg"):
            (local_storage / name).write_bytes(b"x")
        body = client.post("/api/photos/delete", json={"keys": ["a.jpg"]}).json()
        assert body["ok"] is True
        assert sorted(body["deleted"]) == ["a.jpg", "a_preview.jpg", "a_thumb.jpg"]
        assert not any(local_storage.iterdir())

    def test_delete_refuses_parent_segments(self, client, local_storage, monkeypatch):
        import utils.storage as storage

        static = local_storage / "static"
        static.mkdir()
        monkeypatch.setattr(storage, "STATIC_DIR", str(static))
        outside = local_storage / "secret.txt"
        outside.write_bytes(b"keep")

        res = client.post("/api/photos/delete", json={"keys": ["../secret.txt"], "include_variants": False})
        assert res.status_code == 400
        assert outside.read_bytes() == b"keep"

    @pytest.mark.parametrize("key,escapes", [
        ("../secret.txt", True),
        ("shoot/../../etc/passwd", True),
        ("shoot\\..\\x.jpg", True),
        ("shoot/a..b.jpg", False),
        ("shoot/a.jpg", False),
    ])
    def test_parent_segment_detection(self, key, escapes):
        from routers.photos import _escapes_root

        assert _escapes_root(key) is escapes

    def test_delete_reports_failures(self, client, monkeypatch):
        import utils.storage as storage

        def fake_delete(key):
            if key.endswith("_thumb.jpg"):
                raise storage.StorageError("denied", key=key)

        monkeypatch.setattr(storage, "delete_one", fake_delete)
        body = client.post("/api/photos/delete", json={"keys": ["a.jpg"]}).json()
        assert body["ok"] is False
        assert body["errors"] == [{"key": "a_thumb.jpg", "error": "denied"}]


class TestAuth:
    def test_token_required_when_configured(self, client, monkeypatch):
        import core.auth

        monkeypatch.setattr(core.auth, "FRAMEPORT_API_TOKEN", "tok")
        assert client.post("/api/galleries", json={"name": "x"}).status_code == 401
        ok = client.post("/api/galleries", json={"name": "x"}, headers={"Authorization": "Bearer tok"})
        assert ok.status_code == 200

    def test_viewer_session_routes_are_public(self, client, monkeypatch):
        import core.auth

        monkeypatch.setattr(core.auth, "FRAMEPORT_API_TOKEN", "tok")
        assert client.post("/api/viewer/none/next").status_code == 404
