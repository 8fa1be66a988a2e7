from datetime import datetime, timezone

from app import db


class AdminAction(db.Model):
    __tablename__ = "admin_actions"

    id = db.Column(db.Integer, primary_key=True)

    admin_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Action type and details
    action_type = db.Column(
        db.String(50), nullable=False
    )  # 'settle_results', 'settle_bonus', 'update_fight', 'create_event', ...
    action_description = db.Column(db.String(500), nullable=False)

    # Related object IDs for context
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    fight_id = db.Column(db.Integer, db.ForeignKey("fights.id", ondelete="SET NULL"), nullable=True)

    action_metadata = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    admin_user = db.relationship("User", foreign_keys=[admin_user_id])

    __table_args__ = (
        db.Index("idx_admin_action_admin", "admin_user_id"),
        db.Index("idx_admin_action_type", "action_type"),
        db.Index("idx_admin_action_created", "created_at"),
    )

    def __repr__(self):
        return f'<AdminAction {self.action_type} by {self.admin_user.username if self.admin_user else "system"}>'

    @staticmethod
    def log_action(
        admin_user_id,
        action_type,
        description,
        event_id=None,
        fight_id=None,
        action_metadata=None,
        session=None,
    ):
        """Log an admin action in the caller's transaction"""
        session = session or db.session
        action = AdminAction(
            admin_user_id=admin_user_id,
            action_type=action_type,
            action_description=description[:500],
            event_id=event_id,
            fight_id=fight_id,
            action_metadata=action_metadata or {},
        )

        session.add(action)
        return action

    def to_dict(self):
        """Convert action to dictionary for API responses"""
        return {
            "id": self.id,
            "admin_user": self.admin_user.username if self.admin_user else None,
            "action_type": self.action_type,
            "action_description": self.action_description,
            "event_id": self.event_id,
            "fight_id": self.fight_id,
            "action_metadata": self.action_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
