"""
Squads Virtuais
AI domain models.

Models:
    - AIStructureProposal: AI-generated squad structure, pending human review
    - Suggestion: One reviewable unit decomposed from a proposal
    - SuggestionDecision: Audit trail of every suggestion resolution
    - AIPrompt / AIPromptVersion: Prompt registry (one active version per prompt)
    - AIPromptExecution: Best-effort log of every prompt call
"""

from datetime import datetime, timezone

from squads_virtuais.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROPOSAL_STATUSES = {"pending", "confirmed", "discarded"}
SUGGESTION_STATUSES = {"pending", "approved", "rejected"}
SUGGESTION_ACTIONS = {"approved", "approved_with_edits", "rejected"}
SOURCE_CONTEXTS = {"PROBLEM", "BOTH"}


# ═══════════════════════════════════════════════════════════════════════════
#  STRUCTURE PROPOSAL
# ═══════════════════════════════════════════════════════════════════════════


class AIStructureProposal(db.Model):
    """
    Squad structure proposed by the AI from the squad's problem statement.

    Lifecycle: pending → confirmed | discarded (both terminal).
    """

    __tablename__ = "ai_structure_proposals"

    id = db.Column(db.Integer, primary_key=True)
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    problem_statement_id = db.Column(
        db.Integer,
        db.ForeignKey("problem_statements.id", ondelete="SET NULL"),
        nullable=True,
    )
    prompt_version_id = db.Column(
        db.Integer,
        db.ForeignKey("ai_prompt_versions.id", ondelete="SET NULL"),
        nullable=True,
    )

    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | confirmed | discarded")
    source_context = db.Column(db.String(20), nullable=False, default="PROBLEM",
                               comment="PROBLEM | BOTH")
    proposal_payload = db.Column(db.JSON, nullable=False, default=dict)
    uncertainties = db.Column(db.JSON, nullable=False, default=list)
    input_snapshot = db.Column(db.JSON, nullable=True)
    model_name = db.Column(db.String(100), nullable=True)

    created_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    broken_down_at = db.Column(db.DateTime(timezone=True), nullable=True,
                               comment="set once, when suggestions are generated")

    __table_args__ = (
        db.Index("ix_ai_proposal_squad_status", "squad_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "squad_id": self.squad_id,
            "workspace_id": self.workspace_id,
            "problem_statement_id": self.problem_statement_id,
            "prompt_version_id": self.prompt_version_id,
            "status": self.status,
            "source_context": self.source_context,
            "proposal_payload": self.proposal_payload or {},
            "uncertainties": self.uncertainties or [],
            "input_snapshot": self.input_snapshot,
            "model_name": self.model_name,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "discarded_at": self.discarded_at.isoformat() if self.discarded_at else None,
            "broken_down_at": self.broken_down_at.isoformat() if self.broken_down_at else None,
        }

    def __repr__(self):
        return f"<AIStructureProposal {self.id}: squad={self.squad_id} [{self.status}]>"


# ═══════════════════════════════════════════════════════════════════════════
#  SUGGESTIONS
# ═══════════════════════════════════════════════════════════════════════════


class Suggestion(db.Model):
    """
    Reviewable unit of a proposal.

    Lifecycle: pending → approved | rejected, exactly once.
    (proposal_id, display_order) is unique so a proposal can only be broken
    down once even under concurrent requests.
    """

    __tablename__ = "suggestions"

    id = db.Column(db.Integer, primary_key=True)
    proposal_id = db.Column(
        db.Integer,
        db.ForeignKey("ai_structure_proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    suggestion_type = db.Column(db.String(40), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    edited_payload = db.Column(db.JSON, nullable=True)
    display_order = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | approved | rejected")
    rejection_reason = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("proposal_id", "display_order", name="uq_suggestion_proposal_order"),
        db.Index("ix_suggestion_squad_status", "squad_id", "status"),
    )

    @property
    def was_edited(self) -> bool:
        return self.edited_payload is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "proposal_id": self.proposal_id,
            "squad_id": self.squad_id,
            "workspace_id": self.workspace_id,
            "suggestion_type": self.suggestion_type,
            "payload": self.payload or {},
            "edited_payload": self.edited_payload,
            "was_edited": self.was_edited,
            "display_order": self.display_order,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "decided_by_user_id": self.decided_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Suggestion {self.id}: {self.suggestion_type} [{self.status}]>"


class SuggestionDecision(db.Model):
    __tablename__ = "suggestion_decisions"

    id = db.Column(db.Integer, primary_key=True)
    suggestion_id = db.Column(
        db.Integer,
        db.ForeignKey("suggestions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = db.Column(db.String(30), nullable=False,
                       comment="approved | approved_with_edits | rejected")
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason = db.Column(db.Text, nullable=True)
    changes_summary = db.Column(db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "suggestion_id": self.suggestion_id,
            "action": self.action,
            "user_id": self.user_id,
            "reason": self.reason,
            "changes_summary": self.changes_summary,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  PROMPT REGISTRY
# ═══════════════════════════════════════════════════════════════════════════


class AIPrompt(db.Model):
    __tablename__ = "ai_prompts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    category = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    versions = db.relationship(
        "AIPromptVersion", backref="prompt",
        lazy="select", cascade="all, delete-orphan",
        order_by="AIPromptVersion.version",
    )


class AIPromptVersion(db.Model):
    __tablename__ = "ai_prompt_versions"

    id = db.Column(db.Integer, primary_key=True)
    prompt_id = db.Column(
        db.Integer,
        db.ForeignKey("ai_prompts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = db.Column(db.Integer, nullable=False, default=1)
    prompt_text = db.Column(db.Text, nullable=False)
    system_instructions = db.Column(db.Text, nullable=True)
    model_name = db.Column(db.String(100), nullable=True)
    temperature = db.Column(db.Float, nullable=False, default=0.7)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("prompt_id", "version", name="uq_ai_prompt_version"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt_id": self.prompt_id,
            "version": self.version,
            "model_name": self.model_name,
            "temperature": self.temperature,
            "is_active": self.is_active,
        }


class AIPromptExecution(db.Model):
    __tablename__ = "ai_prompt_executions"

    id = db.Column(db.Integer, primary_key=True)
    prompt_version_id = db.Column(
        db.Integer,
        db.ForeignKey("ai_prompt_versions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    proposal_id = db.Column(
        db.Integer,
        db.ForeignKey("ai_structure_proposals.id", ondelete="SET NULL"),
        nullable=True,
    )
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="SET NULL"),
        nullable=True,
    )
    squad_id = db.Column(
        db.Integer,
        db.ForeignKey("squads.id", ondelete="SET NULL"),
        nullable=True,
    )
    input_tokens = db.Column(db.Integer, nullable=True)
    output_tokens = db.Column(db.Integer, nullable=True)
    total_tokens = db.Column(db.Integer, nullable=True)
    execution_time_ms = db.Column(db.Integer, nullable=True)
    success = db.Column(db.Boolean, nullable=False, default=True)
    error_message = db.Column(db.Text, nullable=True)
    executed_by_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
