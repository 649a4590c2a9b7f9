from models import db
from models.notification import Notification, NotificationType


def _add(user, message, is_read=False):
    row = Notification(user_id=user.id, type=NotificationType.MENTION, message=message, link="/forum/1", is_read=is_read)
    db.session.add(row)
    db.session.commit()
    return row


def test_list_with_unread_count(client, make_user, login):
    anne = make_user("anne@example.com")
    _add(anne, "one")
    _add(anne, "two", is_read=True)
    login(anne)

    data = client.get("/api/notifications").get_json()
    assert data["unreadCount"] == 1
    assert len(data["notifications"]) == 2

    data = client.get("/api/notifications?unreadOnly=true").get_json()
    assert [n["message"] for n in data["notifications"]] == ["one"]


def test_mark_read_checks_owner(client, make_user, login):
    anne = make_user("anne@example.com")
    paul = make_user("paul@example.com")
    mine = _add(anne, "mine")
    theirs = _add(paul, "theirs")
    headers = login(anne)

    assert client.put(f"/api/notifications/{theirs.id}/read", headers=headers).status_code == 403
    assert client.put(f"/api/notifications/{mine.id}/read", headers=headers).status_code == 200
    assert client.put("/api/notifications/9999/read", headers=headers).status_code == 404

    db.session.expire_all()
    assert db.session.get(Notification, mine.id).is_read is True
    assert db.session.get(Notification, theirs.id).is_read is False


def test_mark_all_read(client, make_user, login):
    anne = make_user("anne@example.com")
    for i in range(3):
        _add(anne, f"n{i}")
    headers = login(anne)

    resp = client.put("/api/notifications/read-all", headers=headers)

    assert resp.get_json() == {"success": True, "updated": 3}
    assert client.get("/api/notifications").get_json()["unreadCount"] == 0
