from bson import ObjectId

from conftest import API


def test_toggle_subscription(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    url = f"{API}/subscriptions/c/{alice['id']}"

    added = client.post(url, headers=bob["headers"]).json()
    assert added == {"status": "added", "is_subscribed": True, "subscribers_count": 1}
    removed = client.post(url, headers=bob["headers"]).json()
    assert removed == {"status": "removed", "is_subscribed": False, "subscribers_count": 0}


def test_subscription_errors(client, make_user):
    alice = make_user("alice")
    assert client.post(f"{API}/subscriptions/c/{alice['id']}", headers=alice["headers"]).status_code == 400
    assert client.post(f"{API}/subscriptions/c/{ObjectId()}", headers=alice["headers"]).status_code == 404
    assert client.post(f"{API}/subscriptions/c/xyz", headers=alice["headers"]).status_code == 400


def test_subscriber_and_subscription_lists(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    client.post(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])
    client.post(f"{API}/subscriptions/c/{alice['id']}", headers=carol["headers"])
    client.post(f"{API}/subscriptions/c/{carol['id']}", headers=bob["headers"])

    page = client.get(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"]).json()
    assert page["total_docs"] == 2
    cards = {c["username"]: c for c in page["docs"]}
    assert set(cards) == {"bob", "carol"}
    assert cards["carol"]["subscribers_count"] == 1
    assert cards["carol"]["is_subscribed"] is True
    assert cards["bob"]["is_subscribed"] is False
    assert "email" not in cards["bob"]

    page = client.get(f"{API}/subscriptions/u/{bob['id']}").json()
    assert {c["username"] for c in page["docs"]} == {"alice", "carol"}
    assert all(c["is_subscribed"] is False for c in page["docs"])

    assert client.get(f"{API}/subscriptions/u/{ObjectId()}").status_code == 404


def test_lists_skip_edges_to_missing_users(client, make_user, mongo):
    alice = make_user("alice")
    bob = make_user("bob")
    client.post(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])
    mongo["subscription"].insert_one({"subscriber": ObjectId(), "channel": ObjectId(alice["id"])})
    mongo["subscription"].insert_one({"subscriber": ObjectId(bob["id"]), "channel": ObjectId()})

    page = client.get(f"{API}/subscriptions/c/{alice['id']}", params={"limit": 1}).json()
    assert page["total_docs"] == 1
    assert page["total_pages"] == 1
    assert [c["username"] for c in page["docs"]] == ["bob"]

    page = client.get(f"{API}/subscriptions/u/{bob['id']}").json()
    assert page["total_docs"] == 1
    assert [c["username"] for c in page["docs"]] == ["alice"]
