from datetime import datetime, timezone

from app import db


class BonusPrediction(db.Model):
    __tablename__ = "bonus_predictions"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)

    fight_of_the_night_fight_id = db.Column(
        db.Integer, db.ForeignKey("fights.id", ondelete="SET NULL"), nullable=True
    )
    performance_of_the_night_fighter_name = db.Column(db.String(120), nullable=True)

    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    fight_of_the_night = db.relationship(
        "Fight", foreign_keys=[fight_of_the_night_fight_id]
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "event_id", name="unique_user_event_bonus"),
        db.Index("idx_bonus_event", "event_id"),
        db.CheckConstraint("points_awarded >= 0", name="non_negative_bonus_points"),
    )

    def __repr__(self):
        return f"<BonusPrediction user_id={self.user_id} event_id={self.event_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "fight_of_the_night_fight_id": self.fight_of_the_night_fight_id,
            "performance_of_the_night_fighter_name": self.performance_of_the_night_fighter_name,
            "points_awarded": self.points_awarded,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
