from datetime import datetime
from models.db import db


def normalize_answer(value: str) -> str:
    return (value or "").strip().lower()


class SecurityQuestion(db.Model):
    __tablename__ = "security_questions"

    id = db.Column(db.Integer, primary_key=True)
    question = db.Column(db.String(500), nullable=False)

    # stored already normalized (see normalize_answer)
    answer = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    order = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def matches(self, submitted) -> bool:
        if not isinstance(submitted, str):
            return False
        return normalize_answer(submitted) == normalize_answer(self.answer)

    def to_admin_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "isActive": self.is_active,
            "order": self.order,
        }
