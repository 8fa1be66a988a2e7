from datetime import datetime, timezone

from app import db

RESULT_METHODS = ("KO/TKO", "Submission", "Decision")


class Fight(db.Model):
    __tablename__ = "fights"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)

    # Fighters. The name is what predictions reference, so renames must be propagated
    fighter1_name = db.Column(db.String(120), nullable=False)
    fighter1_record = db.Column(db.String(30))
    fighter1_image = db.Column(db.String(500))
    fighter2_name = db.Column(db.String(120), nullable=False)
    fighter2_record = db.Column(db.String(30))
    fighter2_image = db.Column(db.String(500))

    display_order = db.Column(db.Integer, nullable=False, default=0)

    # Result, NULL until settled
    winner_name = db.Column(db.String(120))
    result_method = db.Column(db.String(20))
    result_details = db.Column(db.String(50))  # round number or decision type

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="fight", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_fight_event_order", "event_id", "display_order"),
        db.CheckConstraint("fighter1_name != fighter2_name", name="different_fighters"),
    )

    def __repr__(self):
        return f"<Fight {self.fighter1_name} vs {self.fighter2_name}>"

    @property
    def is_settled(self):
        return self.winner_name is not None

    @property
    def fighter_names(self):
        return (self.fighter1_name, self.fighter2_name)

    def has_fighter(self, name):
        return name in self.fighter_names

    def to_dict(self):
        """Convert fight to dictionary for API responses"""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "display_order": self.display_order,
            "fighter1": {
                "name": self.fighter1_name,
                "record": self.fighter1_record,
                "image": self.fighter1_image,
            },
            "fighter2": {
                "name": self.fighter2_name,
                "record": self.fighter2_record,
                "image": self.fighter2_image,
            },
            "is_settled": self.is_settled,
            "winner_name": self.winner_name,
            "result_method": self.result_method,
            "result_details": self.result_details,
        }
