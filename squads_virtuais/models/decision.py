"""
Squads Virtuais
Decision log & validation matrix models.

Models:
    - Decision: Append-only squad decision log (no update/delete path)
    - ValidationMatrixVersion: Immutable version header, numbered per squad
    - ValidationMatrixEntry: Role × persona × checkpoint cell of a version

Saving a matrix always inserts a new version; historical versions are never
rewritten. Entries keep label snapshots so they stay readable after the
underlying squad association is removed.
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CHECKPOINT_TYPES = {"ISSUE", "DECISION", "PHASE", "MAP"}
REQUIREMENT_LEVELS = {"REQUIRED", "OPTIONAL"}


# ═══════════════════════════════════════════════════════════════════════════
#  DECISION
# ═══════════════════════════════════════════════════════════════════════════


class Decision(db.Model):
    __tablename__ = "decisions"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    decision = db.Column(db.JSON, nullable=False, default=dict)
    created_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_role = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_decision_squad_created", "squad_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "title": self.title,
            "decision": self.decision or {},
            "created_by_user_id": self.created_by_user_id,
            "created_by_role": self.created_by_role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Decision {self.id}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  VALIDATION MATRIX
# ═══════════════════════════════════════════════════════════════════════════


class ValidationMatrixVersion(db.Model):
    __tablename__ = "validation_matrix_versions"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    entries = db.relationship(
        "ValidationMatrixEntry", backref="matrix_version",
        lazy="select", cascade="all, delete-orphan",
        order_by="ValidationMatrixEntry.id",
    )

    __table_args__ = (
        db.UniqueConstraint("squad_id", "version", name="uq_validation_matrix_version"),
    )

    def to_dict(self, include_entries: bool = False) -> dict:
        result = {
            "id": self.id,
            "squad_id": self.squad_id,
            "version": self.version,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_entries:
            result["entries"] = [e.to_dict() for e in self.entries]
        return result


class ValidationMatrixEntry(db.Model):
    __tablename__ = "validation_matrix_entries"

    id = db.Column(db.Integer, primary_key=True)
    version_id = db.Column(
        db.Integer,
        db.ForeignKey("validation_matrix_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Snapshots of the association ids at save time; links may be removed later.
    squad_role_id = db.Column(db.Integer, nullable=False)
    squad_persona_id = db.Column(db.Integer, nullable=False)
    role_label = db.Column(db.String(200), nullable=True)
    role_code = db.Column(db.String(100), nullable=True)
    persona_name = db.Column(db.String(200), nullable=True)
    checkpoint_type = db.Column(db.String(20), nullable=False, comment="ISSUE | DECISION | PHASE | MAP")
    requirement_level = db.Column(db.String(20), nullable=False, comment="REQUIRED | OPTIONAL")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version_id": self.version_id,
            "squad_role_id": self.squad_role_id,
            "squad_persona_id": self.squad_persona_id,
            "role_label": self.role_label,
            "role_code": self.role_code,
            "persona_name": self.persona_name,
            "checkpoint_type": self.checkpoint_type,
            "requirement_level": self.requirement_level,
        }
