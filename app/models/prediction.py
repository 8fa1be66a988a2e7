from datetime import datetime, timezone

from app import db


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    fight_id = db.Column(db.Integer, db.ForeignKey("fights.id"), nullable=False)

    # Prediction details
    predicted_winner_name = db.Column(db.String(120), nullable=False)
    predicted_method = db.Column(db.String(20), nullable=False)
    predicted_details = db.Column(db.String(50), nullable=False)

    # Recomputed from scratch whenever the pick or the fight result changes
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "fight_id", name="unique_user_fight_prediction"),
        db.Index("idx_prediction_fight", "fight_id"),
        db.Index("idx_prediction_winner_name", "predicted_winner_name"),
        db.CheckConstraint("points_awarded >= 0", name="non_negative_prediction_points"),
    )

    def __repr__(self):
        return f"<Prediction user_id={self.user_id} fight_id={self.fight_id} winner={self.predicted_winner_name}>"

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "fight_id": self.fight_id,
            "predicted_winner_name": self.predicted_winner_name,
            "predicted_method": self.predicted_method,
            "predicted_details": self.predicted_details,
            "points_awarded": self.points_awarded,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
