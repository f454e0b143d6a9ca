"""
Squads Virtuais
GitHub integration models.

Models:
    - GithubConnection: GitHub account authorized for a workspace (token encrypted at rest)
    - RepoConnection: Repository linked to a workspace through that account
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PERMISSION_LEVELS = {"admin", "write", "read"}


# ═══════════════════════════════════════════════════════════════════════════
#  GITHUB CONNECTION
# ═══════════════════════════════════════════════════════════════════════════


class GithubConnection(db.Model):
    """
    One row per (workspace, GitHub account). Reconnecting the same account
    refreshes the token in place; the most recent connection is the one used.
    """

    __tablename__ = "github_connections"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_user_id = db.Column(db.String(255), nullable=False)
    login = db.Column(db.String(255), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    access_token_encrypted = db.Column(db.Text, nullable=False, comment="Fernet ciphertext")
    connected_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    connected_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "provider_user_id", name="uq_github_connection_account"),
    )

    def to_dict(self) -> dict:
        # The token never leaves the server
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "provider_user_id": self.provider_user_id,
            "login": self.login,
            "avatar_url": self.avatar_url,
            "connected_by_user_id": self.connected_by_user_id,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
        }

    def __repr__(self):
        return f"<GithubConnection ws={self.workspace_id} {self.login}>"


# ═══════════════════════════════════════════════════════════════════════════
#  REPO CONNECTION
# ═══════════════════════════════════════════════════════════════════════════


class RepoConnection(db.Model):
    __tablename__ = "repo_connections"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    repo_full_name = db.Column(db.String(255), nullable=False, comment="owner/repo")
    default_branch = db.Column(db.String(255), nullable=False, default="main")
    permissions_level = db.Column(db.String(10), nullable=False, comment="admin | write | read")
    connected_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    connected_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "repo_full_name", name="uq_repo_connection_repo"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "repo_full_name": self.repo_full_name,
            "default_branch": self.default_branch,
            "permissions_level": self.permissions_level,
            "connected_by_user_id": self.connected_by_user_id,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
        }

    def __repr__(self):
        return f"<RepoConnection ws={self.workspace_id} {self.repo_full_name}>"
