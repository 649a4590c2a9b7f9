from models import db
from models.notification import NotificationPreference, NotificationType
from models.push_subscription import PushSubscription

SUBSCRIPTION = {
    "endpoint": "https://push.test/device-1",
    "keys": {"p256dh": "key-1", "auth": "auth-1"},
}


def test_subscribe_requires_login(client):
    assert client.post("/api/push/subscribe", json=SUBSCRIPTION).status_code == 401


def test_subscribe_upserts_by_endpoint(client, make_user, login):
    anne = make_user("anne@example.com")
    paul = make_user("paul@example.com")
    headers = login(anne)

    assert client.post("/api/push/subscribe", json=SUBSCRIPTION, headers=headers).status_code == 201
    updated = {"endpoint": SUBSCRIPTION["endpoint"], "keys": {"p256dh": "key-2", "auth": "auth-2"}}
    assert client.post("/api/push/subscribe", json=updated, headers=headers).status_code == 201

    db.session.expire_all()
    rows = PushSubscription.query.all()
    assert len(rows) == 1
    assert rows[0].p256dh == "key-2"
    assert rows[0].user_id == anne.id

    client.post("/auth/logout", headers=headers)
    headers = login(paul)
    client.post("/api/push/subscribe", json=updated, headers=headers)
    db.session.expire_all()
    assert PushSubscription.query.one().user_id == paul.id


def test_subscribe_validates_keys(client, make_user, login):
    headers = login(make_user("anne@example.com"))
    resp = client.post("/api/push/subscribe", json={"endpoint": "https://push.test/x", "keys": {}}, headers=headers)
    assert resp.status_code == 400


def test_unsubscribe_only_removes_own_endpoint(client, make_user, login):
    anne = make_user("anne@example.com")
    paul = make_user("paul@example.com")
    db.session.add(PushSubscription(user_id=paul.id, endpoint="https://push.test/paul", p256dh="k", auth="a"))
    db.session.commit()
    headers = login(anne)

    client.delete("/api/push/subscribe", json={"endpoint": "https://push.test/paul"}, headers=headers)

    assert PushSubscription.query.count() == 1


def test_preferences_default_to_opted_out(client, make_user, login):
    login(make_user("anne@example.com"))

    prefs = client.get("/api/push/preferences").get_json()["preferences"]

    assert [p["type"] for p in prefs] == [t.value for t in NotificationType]
    assert all(p["pushEnabled"] is False and p["emailEnabled"] is False for p in prefs)


def test_preferences_bulk_update(client, make_user, login):
    anne = make_user("anne@example.com")
    headers = login(anne)

    resp = client.put("/api/push/preferences", json={"preferences": [
        {"type": "MENTION", "emailEnabled": True},
        {"type": "TOPIC_REPLY", "pushEnabled": True, "emailEnabled": False},
        {"type": "BOGUS", "emailEnabled": True},
        {"type": "QUOTE"},
    ]}, headers=headers)
    assert resp.get_json() == {"success": True, "updated": 2}

    client.put("/api/push/preferences", json={"preferences": [
        {"type": "MENTION", "pushEnabled": True},
    ]}, headers=headers)

    db.session.expire_all()
    rows = {p.type: p for p in NotificationPreference.query.filter_by(user_id=anne.id)}
    assert set(rows) == {NotificationType.MENTION, NotificationType.TOPIC_REPLY}
    assert rows[NotificationType.MENTION].email_enabled is True
    assert rows[NotificationType.MENTION].push_enabled is True
    assert rows[NotificationType.TOPIC_REPLY].push_enabled is True


def test_preferences_reject_non_list(client, make_user, login):
    headers = login(make_user("anne@example.com"))
    resp = client.put("/api/push/preferences", json={"preferences": "MENTION"}, headers=headers)
    assert resp.status_code == 400


def test_vapid_public_key(client):
    assert client.get("/api/push/vapid-public-key").get_json() == {"publicKey": "test-vapid-public-key"}
