from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.forum import Reply, Topic
from models.notification import NotificationType
from security.rbac import forbid_roles
from utils.audit import log_event
from utils.auth_context import login_required
from utils.mentions import parse_mentions
from utils.notify import create_notifications

forum_bp = Blueprint("forum", __name__, url_prefix="/api/forum")

MAX_TITLE = 200
MAX_CONTENT = 10000


def _text(data, field, limit):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        return None, f"{field} is required"
    if len(value) > limit:
        return None, f"{field} cannot exceed {limit} characters"
    return value.strip(), None


def _author(user):
    return {"id": user.id, "firstName": user.first_name, "lastName": user.last_name}


def _topic_link(topic: Topic) -> str:
    return f"/forum/{topic.id}"


@forum_bp.get("/topics/<int:topic_id>")
@login_required
def get_topic(topic_id):
    topic = db.session.get(Topic, topic_id)
    if not topic:
        return jsonify(error="Topic not found"), 404
    return jsonify(
        id=topic.id,
        title=topic.title,
        content=topic.content,
        author=_author(topic.author),
        createdAt=topic.created_at.isoformat(),
        replies=[
            {
                "id": r.id,
                "content": r.content,
                "author": _author(r.author),
                "createdAt": r.created_at.isoformat(),
            }
            for r in topic.replies
        ],
    ), 200


@forum_bp.post("/topics")
@forbid_roles("CHILD")
def create_topic():
    data = request.get_json(silent=True) or {}
    title, error = _text(data, "title", MAX_TITLE)
    if error:
        return jsonify(error=error), 400
    content, error = _text(data, "content", MAX_CONTENT)
    if error:
        return jsonify(error=error), 400

    topic = Topic(title=title, content=content, author_id=g.user.id)
    db.session.add(topic)
    db.session.commit()
    log_event("TOPIC_CREATE", user_id=g.user.id, entity="topic", entity_id=topic.id)

    mentioned = [u.id for u in parse_mentions(content)]
    create_notifications(
        mentioned,
        NotificationType.MENTION,
        f'{g.user.first_name} mentioned you in "{topic.title}"',
        _topic_link(topic),
        created_by=g.user,
    )

    return jsonify(id=topic.id, title=topic.title, link=_topic_link(topic)), 201


@forum_bp.post("/topics/<int:topic_id>/replies")
@forbid_roles("CHILD")
def create_reply(topic_id):
    topic = db.session.get(Topic, topic_id)
    if not topic:
        return jsonify(error="Topic not found"), 404

    data = request.get_json(silent=True) or {}
    content, error = _text(data, "content", MAX_CONTENT)
    if error:
        return jsonify(error=error), 400

    now = datetime.utcnow()
    reply = Reply(topic_id=topic.id, author_id=g.user.id, content=content, created_at=now)
    topic.last_reply_at = now
    db.session.add(reply)
    db.session.commit()
    log_event("REPLY_CREATE", user_id=g.user.id, entity="reply", entity_id=reply.id)

    link = _topic_link(topic)
    mentioned = {u.id for u in parse_mentions(content)}
    create_notifications(
        mentioned,
        NotificationType.MENTION,
        f'{g.user.first_name} mentioned you in "{topic.title}"',
        link,
        created_by=g.user,
    )
    # the topic author already hears about it through the mention
    if topic.author_id not in mentioned:
        create_notifications(
            [topic.author_id],
            NotificationType.TOPIC_REPLY,
            f'{g.user.first_name} replied to "{topic.title}"',
            link,
            created_by=g.user,
        )

    return jsonify(id=reply.id, topicId=topic.id), 201
