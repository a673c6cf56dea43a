"""Role and team checks shared by the services."""

from ..database.models import UserDB
from ..database.exceptions import PermissionDeniedError


def require_manager(actor: UserDB) -> str:
    """
    Ensure the actor manages a team.

    Returns:
        The managed team id

    Raises:
        PermissionDeniedError: actor is not a manager with a team
    """
    if not actor.is_manager or not actor.team_id:
        raise PermissionDeniedError("Only managers can perform this action")
    return actor.team_id


def manages_team(actor: UserDB, team_id: str) -> bool:
    return actor.is_manager and actor.team_id == team_id
