"""
Squads Virtuais
Role & persona catalog models.

Models:
    - Role: Global role catalog (read-only seed data, code immutable)
    - WorkspaceRole: Workspace-owned role, fully mutable except code
    - GlobalPersona: Global persona catalog (read-only seed data)
    - Persona: Workspace-owned persona
    - SquadRole: Squad ↔ (Role XOR WorkspaceRole) association
    - SquadPersona: Squad ↔ (GlobalPersona XOR Persona) association
    - SquadMemberRole: Role assignment of a squad member (one active per member)

An association row references exactly one of the global or workspace-scoped
entity; a CHECK constraint enforces the exclusivity and ``source`` exposes
which side is set.
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PERSONA_TYPES = {"cliente", "stakeholder", "membro_squad"}
DEFAULT_PERSONA_TYPE = "cliente"
SOURCE_GLOBAL = "global"
SOURCE_WORKSPACE = "workspace"


# ═══════════════════════════════════════════════════════════════════════════
#  ROLES
# ═══════════════════════════════════════════════════════════════════════════


class Role(db.Model):
    """Global role. Never mutated through the API."""

    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), nullable=False, unique=True)
    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    responsibilities = db.Column(db.Text, nullable=True)
    default_active = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "label": self.label,
            "description": self.description,
            "responsibilities": self.responsibilities,
            "default_active": self.default_active,
            "source": SOURCE_GLOBAL,
        }

    def __repr__(self):
        return f"<Role {self.code}>"


class WorkspaceRole(db.Model):
    """Workspace role. ``code`` is fixed at creation; deletion is a soft delete."""

    __tablename__ = "workspace_roles"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = db.Column(db.String(100), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    responsibilities = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    source_role_id = db.Column(
        db.Integer,
        db.ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Global role this one was duplicated from",
    )
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

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "code", name="uq_workspace_role_code"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "code": self.code,
            "label": self.label,
            "description": self.description,
            "responsibilities": self.responsibilities,
            "active": self.active,
            "source_role_id": self.source_role_id,
            "source": SOURCE_WORKSPACE,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WorkspaceRole {self.workspace_id}/{self.code}>"


# ═══════════════════════════════════════════════════════════════════════════
#  PERSONAS
# ═══════════════════════════════════════════════════════════════════════════


class _PersonaFields:
    """Columns shared by the global and workspace persona tables."""

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(30), nullable=False, default=DEFAULT_PERSONA_TYPE,
                     comment="cliente | stakeholder | membro_squad")
    subtype = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    focus = db.Column(db.Text, nullable=True)
    goals = db.Column(db.Text, nullable=True)
    pain_points = db.Column(db.Text, nullable=True)
    behaviors = db.Column(db.Text, nullable=True)
    influence_level = db.Column(db.String(30), nullable=True)

    def _persona_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "subtype": self.subtype,
            "description": self.description,
            "focus": self.focus,
            "goals": self.goals,
            "pain_points": self.pain_points,
            "behaviors": self.behaviors,
            "influence_level": self.influence_level,
        }


class GlobalPersona(_PersonaFields, db.Model):
    """Global persona. Never mutated through the API."""

    __tablename__ = "global_personas"

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        result = self._persona_dict()
        result["source"] = SOURCE_GLOBAL
        return result

    def __repr__(self):
        return f"<GlobalPersona {self.id}: {self.name}>"


class Persona(_PersonaFields, db.Model):
    __tablename__ = "personas"

    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    active = db.Column(db.Boolean, nullable=False, default=True)
    source_persona_id = db.Column(
        db.Integer,
        db.ForeignKey("global_personas.id", ondelete="SET NULL"),
        nullable=True,
        comment="Global persona this one was duplicated from",
    )
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
        result = self._persona_dict()
        result.update({
            "workspace_id": self.workspace_id,
            "active": self.active,
            "source_persona_id": self.source_persona_id,
            "source": SOURCE_WORKSPACE,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        })
        return result

    def __repr__(self):
        return f"<Persona {self.id}: {self.name} (ws={self.workspace_id})>"


# ═══════════════════════════════════════════════════════════════════════════
#  SQUAD ASSOCIATIONS
# ═══════════════════════════════════════════════════════════════════════════


class SquadRole(db.Model):
    """
    Role activated in a squad.

    Exactly one of role_id / workspace_role_id is set. The pair
    (squad_id, referenced role) is unique, so activating the same role twice
    can never produce two rows.
    """

    __tablename__ = "squad_roles"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id = db.Column(
        db.Integer,
        db.ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=True,
    )
    workspace_role_id = db.Column(
        db.Integer,
        db.ForeignKey("workspace_roles.id", ondelete="CASCADE"),
        nullable=True,
    )
    active = db.Column(db.Boolean, nullable=False, default=True)
    name = db.Column(db.String(200), nullable=True, comment="Squad-specific display name")
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    role = db.relationship("Role", lazy="joined")
    workspace_role = db.relationship("WorkspaceRole", lazy="joined")

    __table_args__ = (
        db.CheckConstraint(
            "(role_id IS NULL) <> (workspace_role_id IS NULL)",
            name="ck_squad_role_single_source",
        ),
        db.UniqueConstraint("squad_id", "role_id", name="uq_squad_role_global"),
        db.UniqueConstraint("squad_id", "workspace_role_id", name="uq_squad_role_workspace"),
    )

    @property
    def source(self) -> str:
        return SOURCE_GLOBAL if self.role_id is not None else SOURCE_WORKSPACE

    @property
    def target(self):
        """The referenced Role or WorkspaceRole."""
        return self.role if self.role_id is not None else self.workspace_role

    def to_dict(self) -> dict:
        target = self.target
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "role_id": self.role_id,
            "workspace_role_id": self.workspace_role_id,
            "source": self.source,
            "code": target.code if target else None,
            "label": target.label if target else None,
            "name": self.name or (target.label if target else None),
            "description": self.description or (target.description if target else None),
            "responsibilities": target.responsibilities if target else None,
            "active": self.active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<SquadRole {self.id}: squad={self.squad_id} {self.source}>"


class SquadPersona(db.Model):
    """Persona associated to a squad. Same exclusivity rules as SquadRole."""

    __tablename__ = "squad_personas"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    global_persona_id = db.Column(
        db.Integer,
        db.ForeignKey("global_personas.id", ondelete="CASCADE"),
        nullable=True,
    )
    persona_id = db.Column(
        db.Integer,
        db.ForeignKey("personas.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    context_description = db.Column(db.Text, nullable=True)
    focus = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    global_persona = db.relationship("GlobalPersona", lazy="joined")
    persona = db.relationship("Persona", lazy="joined")

    __table_args__ = (
        db.CheckConstraint(
            "(global_persona_id IS NULL) <> (persona_id IS NULL)",
            name="ck_squad_persona_single_source",
        ),
        db.UniqueConstraint("squad_id", "global_persona_id", name="uq_squad_persona_global"),
        db.UniqueConstraint("squad_id", "persona_id", name="uq_squad_persona_workspace"),
    )

    @property
    def source(self) -> str:
        return SOURCE_GLOBAL if self.global_persona_id is not None else SOURCE_WORKSPACE

    @property
    def target(self):
        """The referenced GlobalPersona or Persona."""
        return self.global_persona if self.global_persona_id is not None else self.persona

    def to_dict(self) -> dict:
        target = self.target
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "global_persona_id": self.global_persona_id,
            "persona_id": self.persona_id,
            "source": self.source,
            "name": target.name if target else None,
            "type": target.type if target else None,
            "subtype": target.subtype if target else None,
            "context_description": self.context_description,
            "focus": self.focus,
            "persona": target.to_dict() if target else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<SquadPersona {self.id}: squad={self.squad_id} {self.source}>"


class SquadMemberRole(db.Model):
    """
    Role held by a squad member.

    History is kept: reassignment deactivates the previous row and inserts a
    new one. The partial unique index allows one active row per member.
    """

    __tablename__ = "squad_member_roles"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    squad_member_id = db.Column(
        db.Integer,
        db.ForeignKey("squad_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    squad_role_id = db.Column(
        db.Integer,
        db.ForeignKey("squad_roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    active = db.Column(db.Boolean, nullable=False, default=True)
    assigned_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    unassigned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    squad_member = db.relationship("SquadMember", lazy="joined")
    squad_role = db.relationship("SquadRole", lazy="joined")

    __table_args__ = (
        db.Index(
            "uq_squad_member_role_active", "squad_member_id",
            unique=True,
            postgresql_where=db.text("active"),
            sqlite_where=db.text("active = 1"),
        ),
    )

    def to_dict(self) -> dict:
        member = self.squad_member
        role = self.squad_role
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "squad_member_id": self.squad_member_id,
            "squad_role_id": self.squad_role_id,
            "active": self.active,
            "user_id": member.user_id if member else None,
            "user_name": member.user.name if member and member.user else None,
            "user_email": member.user.email if member and member.user else None,
            "role_name": role.to_dict()["name"] if role else None,
            "role_code": role.target.code if role and role.target else None,
            "role_source": role.source if role else None,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "unassigned_at": self.unassigned_at.isoformat() if self.unassigned_at else None,
        }
