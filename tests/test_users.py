import os

from conftest import API, PASSWORD, PNG


def test_register_hides_secrets_and_lowercases(client, mongo):
    resp = client.post(
        f"{API}/users/register",
        data={"full_name": "Ada L", "email": "Ada@Example.com", "username": "AdaL", "password": PASSWORD},
        files={"avatar": ("a.png", PNG, "image/png")},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["username"] == "adal"
    assert body["email"] == "ada@example.com"
    assert body["avatar_url"].startswith("/static/avatars/")
    assert "password_hash" not in body
    assert "refresh_token" not in body
    assert mongo["user"].find_one({"username": "adal"})["password_hash"] != PASSWORD


def test_register_duplicate_is_conflict(client, make_user):
    make_user("taken")
    resp = client.post(
        f"{API}/users/register",
        data={"full_name": "Other", "email": "other@example.com", "username": "TAKEN", "password": PASSWORD},
        files={"avatar": ("a.png", PNG, "image/png")},
    )
    assert resp.status_code == 409


def test_register_requires_image_avatar(client):
    resp = client.post(
        f"{API}/users/register",
        data={"full_name": "No Pic", "email": "nopic@example.com", "username": "nopic", "password": PASSWORD},
        files={"avatar": ("a.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400


def test_login_with_wrong_password(client, make_user):
    make_user("alice")
    resp = client.post(f"{API}/users/login", json={"username": "alice", "password": "nope"})
    assert resp.status_code == 401


def test_login_by_email(client, make_user):
    make_user("bob")
    resp = client.post(f"{API}/users/login", json={"email": "bob@example.com", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "bob"


def test_current_user_requires_token(client, make_user):
    alice = make_user("alice")
    assert client.get(f"{API}/users/current-user").status_code == 401
    assert client.get(f"{API}/users/current-user", headers={"Authorization": "Bearer junk"}).status_code == 401
    resp = client.get(f"{API}/users/current-user", headers=alice["headers"])
    assert resp.status_code == 200
    assert resp.json()["id"] == alice["id"]


def test_refresh_rotates_and_invalidates_old_token(client, make_user):
    alice = make_user("alice")
    old = alice["tokens"]["refresh_token"]
    resp = client.post(f"{API}/users/refresh-token", json={"refresh_token": old})
    assert resp.status_code == 200
    new = resp.json()["refresh_token"]
    assert new != old
    client.cookies.clear()

    resp = client.post(f"{API}/users/refresh-token", json={"refresh_token": old})
    assert resp.status_code == 401


def test_refresh_rejects_access_token(client, make_user):
    alice = make_user("alice")
    resp = client.post(f"{API}/users/refresh-token", json={"refresh_token": alice["tokens"]["access_token"]})
    assert resp.status_code == 401


def test_logout_invalidates_refresh_token(client, make_user, mongo):
    alice = make_user("alice")
    resp = client.post(f"{API}/users/logout", headers=alice["headers"])
    assert resp.status_code == 200
    client.cookies.clear()
    assert mongo["user"].find_one({"username": "alice"})["refresh_token"] is None
    resp = client.post(f"{API}/users/refresh-token", json={"refresh_token": alice["tokens"]["refresh_token"]})
    assert resp.status_code == 401


def test_change_password(client, make_user):
    alice = make_user("alice")
    resp = client.post(
        f"{API}/users/password",
        json={"old_password": "wrong", "new_password": "next-pass"},
        headers=alice["headers"],
    )
    assert resp.status_code == 401
    resp = client.post(
        f"{API}/users/password",
        json={"old_password": PASSWORD, "new_password": "next-pass"},
        headers=alice["headers"],
    )
    assert resp.status_code == 200
    assert client.post(f"{API}/users/login", json={"username": "alice", "password": "next-pass"}).status_code == 200


def test_update_details(client, make_user):
    alice = make_user("alice")
    make_user("bob")
    resp = client.patch(
        f"{API}/users/details",
        json={"email": "alice.new@example.com", "full_name": "Alice New"},
        headers=alice["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["full_name"] == "Alice New"
    resp = client.patch(
        f"{API}/users/details",
        json={"email": "bob@example.com", "full_name": "Alice"},
        headers=alice["headers"],
    )
    assert resp.status_code == 409


def test_avatar_replacement_deletes_old_file(client, make_user, storage):
    alice = make_user("alice")
    old_url = client.get(f"{API}/users/current-user", headers=alice["headers"]).json()["avatar_url"]
    assert os.path.exists(storage.path_for(old_url))

    resp = client.patch(
        f"{API}/users/avatar",
        files={"avatar": ("new.png", PNG, "image/png")},
        headers=alice["headers"],
    )
    assert resp.status_code == 200
    new_url = resp.json()["avatar_url"]
    assert new_url != old_url
    assert os.path.exists(storage.path_for(new_url))
    assert not os.path.exists(storage.path_for(old_url))


def test_channel_profile_counts_and_is_subscribed(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    client.post(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])
    client.post(f"{API}/subscriptions/c/{alice['id']}", headers=carol["headers"])
    client.post(f"{API}/subscriptions/c/{bob['id']}", headers=alice["headers"])

    resp = client.get(f"{API}/users/c/ALICE", headers=bob["headers"])
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["subscribers_count"] == 2
    assert profile["subscribed_to_count"] == 1
    assert profile["is_subscribed"] is True
    assert "password_hash" not in profile
    assert "watch_history" not in profile

    profile = client.get(f"{API}/users/c/alice", headers=alice["headers"]).json()
    assert profile["is_subscribed"] is False

    assert client.get(f"{API}/users/c/nobody").status_code == 404


def test_watch_history_most_recent_first(client, make_user, publish):
    alice = make_user("alice")
    first = publish(alice, title="first")
    second = publish(alice, title="second")
    client.get(f"{API}/videos/{first['id']}", headers=alice["headers"])
    client.get(f"{API}/videos/{second['id']}", headers=alice["headers"])
    client.get(f"{API}/videos/{first['id']}", headers=alice["headers"])

    resp = client.get(f"{API}/users/history", headers=alice["headers"])
    assert resp.status_code == 200
    assert [v["title"] for v in resp.json()] == ["second", "first"]
    assert resp.json()[0]["owner"]["username"] == "alice"
