"""
Workspace-scoped loaders.

Every entity-store operation resolves its scoping row through these helpers
before doing anything else:

    1. load the row                           → NotFoundError (404) if absent
    2. check the caller's workspace membership → AuthorizationError (403)

Usage:
    squad = get_squad_for_member(squad_id, user_id)
    role = get_scoped_or_404(WorkspaceRole, role_id, user_id)
"""

import logging

from sqlalchemy import select

from squads_virtuais.core.exceptions import AuthorizationError, NotFoundError
from squads_virtuais.models import db
from squads_virtuais.models.workspace import Squad, Workspace, WorkspaceMember

logger = logging.getLogger(__name__)


def is_workspace_member(workspace_id: int, user_id: int) -> bool:
    stmt = select(WorkspaceMember.id).where(
        WorkspaceMember.workspace_id == workspace_id,
        WorkspaceMember.user_id == user_id,
    )
    return db.session.execute(stmt).first() is not None


def require_workspace_member(workspace_id: int, user_id: int) -> None:
    if not is_workspace_member(workspace_id, user_id):
        logger.info(
            "Workspace access denied",
            extra={"user_id": user_id, "workspace_id": workspace_id,
                   "event_type": "access.denied"},
        )
        raise AuthorizationError()


def get_workspace_for_member(workspace_id: int, user_id: int) -> Workspace:
    workspace = db.session.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace", workspace_id)
    require_workspace_member(workspace.id, user_id)
    return workspace


def get_squad_for_member(squad_id: int, user_id: int) -> Squad:
    squad = db.session.get(Squad, squad_id)
    if squad is None:
        raise NotFoundError("Squad", squad_id)
    require_workspace_member(squad.workspace_id, user_id)
    return squad


def get_scoped_or_404(model, pk: int, user_id: int):
    """Load a row whose scope is reachable via ``workspace_id`` or ``squad_id``.

    Raises ValueError for models with neither column, so a wrongly scoped
    call fails loudly in development instead of skipping the check.
    """
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(model.__name__, pk)
    if hasattr(obj, "workspace_id"):
        require_workspace_member(obj.workspace_id, user_id)
    elif hasattr(obj, "squad_id"):
        squad = db.session.get(Squad, obj.squad_id)
        if squad is None:
            raise NotFoundError(model.__name__, pk)
        require_workspace_member(squad.workspace_id, user_id)
    else:
        raise ValueError(f"{model.__name__} has no workspace_id or squad_id scope")
    return obj
