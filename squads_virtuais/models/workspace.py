"""
Squads Virtuais
Workspace domain models.

Models:
    - Workspace: Top-level tenant boundary, owned by the creating user
    - WorkspaceMember: Membership row; the authorization key for every scoped call
    - Squad: Product-discovery team inside a workspace
    - SquadMember: User participating in a squad
    - Phase: Ordered workflow step of a squad
    - ProblemStatement: Problem framing, standalone or tied to one squad

Architecture chain: Workspace → Squad → SquadMember / Phase / ProblemStatement
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SQUAD_STATUSES = {
    "rascunho", "ativa", "aguardando_execucao", "em_revisao", "concluida", "pausada",
}
DEFAULT_SQUAD_STATUS = "rascunho"
WORKSPACE_MEMBER_ROLES = {"owner", "member"}


# ═══════════════════════════════════════════════════════════════════════════
#  WORKSPACE
# ═══════════════════════════════════════════════════════════════════════════


class Workspace(db.Model):
    __tablename__ = "workspaces"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(50), nullable=True)
    owner_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "owner_user_id": self.owner_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Workspace {self.id}: {self.name}>"


class WorkspaceMember(db.Model):
    __tablename__ = "workspace_members"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="member", comment="owner | member")
    joined_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "role": self.role,
            "name": self.user.name if self.user else None,
            "email": self.user.email if self.user else None,
            "avatar_url": self.user.avatar_url if self.user else None,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  SQUAD
# ═══════════════════════════════════════════════════════════════════════════


class Squad(db.Model):
    """
    Cross-functional discovery team.

    Status is free within SQUAD_STATUSES; there is no transition graph.
    Deleting a squad relies on ON DELETE CASCADE for its dependents.
    """

    __tablename__ = "squads"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default=DEFAULT_SQUAD_STATUS,
        comment="rascunho | ativa | aguardando_execucao | em_revisao | concluida | pausada",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Squad {self.id}: {self.name} [{self.status}]>"


class SquadMember(db.Model):
    __tablename__ = "squad_members"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    active = db.Column(db.Boolean, nullable=False, default=True)
    joined_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("squad_id", "user_id", name="uq_squad_member"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "user_id": self.user_id,
            "active": self.active,
            "name": self.user.name if self.user else None,
            "email": self.user.email if self.user else None,
            "avatar_url": self.user.avatar_url if self.user else None,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  PHASE
# ═══════════════════════════════════════════════════════════════════════════


class Phase(db.Model):
    """Workflow step. Names are unique per squad, compared case-insensitively by writers."""

    __tablename__ = "phases"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "name": self.name,
            "description": self.description,
            "order_index": self.order_index,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  PROBLEM STATEMENT
# ═══════════════════════════════════════════════════════════════════════════


class ProblemStatement(db.Model):
    """
    Problem framing owned by a workspace.

    squad_id is nullable and mutable: a statement may be drafted standalone
    and later attached to (or moved between) squads of the same workspace.
    """

    __tablename__ = "problem_statements"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = db.Column(db.String(300), nullable=False)
    narrative = db.Column(db.Text, nullable=True)
    success_metrics = db.Column(db.JSON, nullable=False, default=list)
    constraints = db.Column(db.JSON, nullable=False, default=list)
    assumptions = db.Column(db.JSON, nullable=False, default=list)
    open_questions = db.Column(db.JSON, nullable=False, default=list)

    # ── Maturity (set by approved suggestions) ──
    current_stage = db.Column(db.String(100), nullable=True)
    confidence_level = db.Column(db.String(50), nullable=True)

    created_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "squad_id": self.squad_id,
            "title": self.title,
            "narrative": self.narrative,
            "success_metrics": self.success_metrics or [],
            "constraints": self.constraints or [],
            "assumptions": self.assumptions or [],
            "open_questions": self.open_questions or [],
            "current_stage": self.current_stage,
            "confidence_level": self.confidence_level,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProblemStatement {self.id}: {self.title[:40]}>"
