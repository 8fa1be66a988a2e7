from datetime import datetime, timezone

from app import db

# Stored in a bonus-result column when the admin decided nobody wins that
# category. NULL means the category has not been decided yet.
BONUS_NONE = "none"


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    date = db.Column(db.Date, nullable=False)
    picks_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    entry_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # Bonus results: a fight id / fighter name, BONUS_NONE, or NULL (undecided)
    real_fight_of_night_id = db.Column(db.String(20), nullable=True)
    real_performance_of_night_fighter_name = db.Column(db.String(120), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    fights = db.relationship(
        "Fight",
        backref="event",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    bonus_predictions = db.relationship(
        "BonusPrediction", backref="event", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_event_date", "date"),
        db.CheckConstraint("entry_price >= 0", name="non_negative_entry_price"),
    )

    def __repr__(self):
        return f"<Event {self.name} ({self.date})>"

    @property
    def deadline_utc(self):
        """Picks deadline as an aware UTC datetime"""
        deadline = self.picks_deadline
        # If deadline is timezone-naive, assume it's in UTC
        if deadline is not None and deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return deadline

    def is_open_for_picks(self, now=None):
        """Check if the picks deadline is still in the future"""
        from app.utils.timezone_utils import get_utc_time

        now = now or get_utc_time()
        return now < self.deadline_utc

    @property
    def bonus_settled(self):
        return (
            self.real_fight_of_night_id is not None
            or self.real_performance_of_night_fighter_name is not None
        )

    def get_ordered_fights(self):
        """Fights in card order; display_order ties fall back to insertion order"""
        from .fight import Fight

        return self.fights.order_by(Fight.display_order, Fight.id).all()

    def fighter_names(self):
        """All fighter names on this card"""
        names = set()
        for fight in self.fights:
            names.update(fight.fighter_names)
        return names

    def to_dict(self):
        """Convert event to dictionary for API responses"""
        from app.utils.timezone_utils import convert_to_app_timezone

        local_deadline = convert_to_app_timezone(self.picks_deadline)
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date.isoformat() if self.date else None,
            "picks_deadline": self.deadline_utc.isoformat() if self.picks_deadline else None,
            "picks_deadline_local": local_deadline.isoformat() if local_deadline else None,
            "entry_price": str(self.entry_price) if self.entry_price is not None else None,
            "is_open_for_picks": self.is_open_for_picks(),
            "bonus_settled": self.bonus_settled,
            "real_fight_of_night_id": self.real_fight_of_night_id,
            "real_performance_of_night_fighter_name": self.real_performance_of_night_fighter_name,
        }
