from datetime import datetime, timezone

from app import db

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_REFUNDED)


class Payment(db.Model):
    """Entry-fee payment status, written only from provider notifications"""

    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)
    provider_reference = db.Column(db.String(120), unique=True, nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    event = db.relationship("Event", backref=db.backref("payments", lazy="dynamic"))

    __table_args__ = (
        db.UniqueConstraint("user_id", "event_id", name="unique_user_event_payment"),
        db.Index("idx_payment_status", "status"),
    )

    def __repr__(self):
        return f"<Payment user_id={self.user_id} event_id={self.event_id} {self.status}>"

    @property
    def is_paid(self):
        return self.status == PAYMENT_PAID

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "status": self.status,
            "provider_reference": self.provider_reference,
            "amount": str(self.amount) if self.amount is not None else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
