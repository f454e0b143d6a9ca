"""
Squads Virtuais
Identity models.

Models:
    - User: Internal account, created on first login through any provider
    - UserIdentity: One row per (provider, provider_user_id) linked to a User
    - OAuthState: Single-use anti-forgery state for the GitHub redirect flows
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

IDENTITY_PROVIDERS = {"google", "github"}


# ═══════════════════════════════════════════════════════════════════════════
#  USER
# ═══════════════════════════════════════════════════════════════════════════


class User(db.Model):
    """Internal user account. Display fields are refreshed on every login."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True, unique=True, index=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    role = db.Column(db.String(30), nullable=False, default="member")

    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    identities = db.relationship(
        "UserIdentity", backref="user",
        lazy="select", cascade="all, delete-orphan",
        order_by="UserIdentity.id",
    )

    def to_dict(self, include_identities: bool = False) -> dict:
        result = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_identities:
            result["identities"] = [i.to_dict() for i in self.identities]
        return result

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


# ═══════════════════════════════════════════════════════════════════════════
#  USER IDENTITY
# ═══════════════════════════════════════════════════════════════════════════


class UserIdentity(db.Model):
    """
    External identity linked to a User.

    (provider, provider_user_id) is the only stable key a provider gives us;
    email can change or be missing, so it is never used as the identity key.
    """

    __tablename__ = "user_identities"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider = db.Column(db.String(20), nullable=False, comment="google | github")
    provider_user_id = db.Column(db.String(255), nullable=False)
    provider_email = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(200), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    raw_profile = db.Column(db.JSON, nullable=True)

    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("provider", "provider_user_id", name="uq_user_identity_provider_subject"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "provider_user_id": self.provider_user_id,
            "provider_email": self.provider_email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<UserIdentity {self.provider}:{self.provider_user_id} → user {self.user_id}>"


# ═══════════════════════════════════════════════════════════════════════════
#  OAUTH STATE
# ═══════════════════════════════════════════════════════════════════════════


class OAuthState(db.Model):
    """Anti-forgery state issued when a redirect login starts. Consumed once."""

    __tablename__ = "oauth_states"

    id = db.Column(db.Integer, primary_key=True)
    state = db.Column(db.String(128), nullable=False, unique=True)
    provider = db.Column(db.String(20), nullable=False, comment="github | github_repo")
    # Set when the redirect flow connects an integration rather than logging in
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<OAuthState {self.provider} consumed={self.consumed_at is not None}>"
