from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


# Role key -> seniority. Higher outranks lower (leave approvals, correspondence).
ROLE_SENIORITY = {
    "admin": 100,
    "general_manager": 90,
    "it_support": 80,
    "branch_manager": 50,
    "supervisor": 30,
    "employee": 10,
}


class User(db.Model):
    """
    Staff account used for login and attribution.

    WHY: Every financial event records who performed it; branch_id decides
    which branch's data the user may see. Head-office users usually have no
    branch (branch_id is NULL).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_branch_role", "branch_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(32), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="employee")

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    salary_cents = db.Column(db.Integer, nullable=False, default=0)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deletion_reason = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    @property
    def seniority(self) -> int:
        return ROLE_SENIORITY.get(self.role, 0)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "role": self.role,
            "branch_id": self.branch_id,
            "salary_cents": self.salary_cents,
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session. Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
