"""Tests for profile invariants.

Covers:
- Self-service create and edit
- Role changes are admin only
- Referral attribution is write-once for members, never self-referential
"""
from collective.models.profile import Profile
from tests.conftest import auth_headers, create_admin, create_profile, create_test_profile


class TestProfileCreate:
    """Creating the caller's own profile."""

    def test_create_own_profile(self, client):
        data = create_test_profile(client, "user-1", "Alice")
        assert data["profile_id"] == "user-1"
        assert data["role"] == "member"

    def test_anonymous_cannot_create(self, client):
        assert client.post("/api/profiles/", json={"display_name": "Ghost"}).status_code == 401

    def test_duplicate_profile_rejected(self, client):
        create_test_profile(client, "user-1", "Alice")
        resp = client.post("/api/profiles/", json={"display_name": "Again"}, headers=auth_headers("user-1"))
        assert resp.status_code == 422


class TestRoleChanges:
    """Only admins may change roles."""

    def test_member_cannot_promote_self(self, client):
        create_test_profile(client, "user-1", "Alice")
        resp = client.patch("/api/profiles/user-1", json={"role": "admin"}, headers=auth_headers("user-1"))
        assert resp.status_code == 403

    def test_member_edits_own_fields(self, client):
        create_test_profile(client, "user-1", "Alice")
        resp = client.patch(
            "/api/profiles/user-1", json={"display_name": "Alice B", "is_songwriter": True},
            headers=auth_headers("user-1"),
        )
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Alice B"
        assert resp.json()["is_songwriter"] is True

    def test_member_cannot_edit_others(self, client):
        create_test_profile(client, "user-1", "Alice")
        create_test_profile(client, "user-2", "Bob")
        resp = client.patch("/api/profiles/user-2", json={"display_name": "Hacked"}, headers=auth_headers("user-1"))
        assert resp.status_code == 403

    def test_admin_promotes_member(self, db, client):
        admin = create_admin(db)
        create_test_profile(client, "user-1", "Alice")
        resp = client.patch("/api/profiles/user-1", json={"role": "admin"}, headers=auth_headers(admin.profile_id))
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"


class TestReferrals:
    """Referral attribution."""

    def test_capture_is_write_once(self, db, client):
        first = create_profile(db, "First Referrer")
        second = create_profile(db, "Second Referrer")
        create_test_profile(client, "user-1", "Alice")
        headers = auth_headers("user-1")

        resp = client.post("/api/profiles/me/referral", json={"referrer_id": first.profile_id, "via": "link"},
                           headers=headers)
        assert resp.status_code == 200
        assert resp.json()["referred_by_profile_id"] == first.profile_id

        again = client.post("/api/profiles/me/referral", json={"referrer_id": second.profile_id},
                            headers=headers)
        assert again.json()["referred_by_profile_id"] == first.profile_id

    def test_member_cannot_rewrite_referral(self, db, client):
        first = create_profile(db, "First Referrer")
        second = create_profile(db, "Second Referrer")
        create_test_profile(client, "user-1", "Alice")
        headers = auth_headers("user-1")
        client.post("/api/profiles/me/referral", json={"referrer_id": first.profile_id}, headers=headers)

        resp = client.patch("/api/profiles/user-1", json={"referred_by_profile_id": second.profile_id},
                            headers=headers)
        assert resp.status_code == 403

    def test_admin_can_rewrite_referral(self, db, client):
        first = create_profile(db, "First Referrer")
        second = create_profile(db, "Second Referrer")
        admin = create_admin(db)
        create_test_profile(client, "user-1", "Alice")
        client.post("/api/profiles/me/referral", json={"referrer_id": first.profile_id},
                    headers=auth_headers("user-1"))

        resp = client.patch("/api/profiles/user-1", json={"referred_by_profile_id": second.profile_id},
                            headers=auth_headers(admin.profile_id))
        assert resp.status_code == 200
        db.expire_all()
        assert db.get(Profile, "user-1").referred_by_profile_id == second.profile_id

    def test_self_referral_rejected(self, client):
        create_test_profile(client, "user-1", "Alice")
        resp = client.post("/api/profiles/me/referral", json={"referrer_id": "user-1"},
                           headers=auth_headers("user-1"))
        assert resp.status_code == 422
