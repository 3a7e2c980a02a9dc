"""Permission Guard - Authorization enforcement for workflow decisions"""
from typing import List, Optional

from ..config.settings import settings
from ..domain.errors import AuthorizationError
from ..domain.models import ActorContext, Workflow
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for lifecycle operations

    Rules:
    - Any identified user may submit a request
    - Only holders of an approver role may approve or reject
    - A requester may not decide their own request unless self-approval is enabled
    """

    def __init__(
        self,
        approver_roles: Optional[List[str]] = None,
        allow_self_approval: Optional[bool] = None
    ):
        self.approver_roles = approver_roles if approver_roles is not None else settings.approver_roles_list
        self.allow_self_approval = (
            allow_self_approval if allow_self_approval is not None else settings.allow_self_approval
        )

    def _is_same_user(self, actor: ActorContext, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        return actor.user_id.lower() == user_id.lower()

    def is_approver(self, actor: ActorContext) -> bool:
        return actor.has_any_role(self.approver_roles)

    def can_decide(self, actor: ActorContext, workflow: Workflow) -> bool:
        """Check if actor may approve or reject a workflow"""
        if not self.is_approver(actor):
            return False
        if not self.allow_self_approval and self._is_same_user(actor, workflow.requester_id):
            return False
        return True

    def ensure_can_decide(self, actor: ActorContext, workflow: Workflow) -> None:
        """Raise AuthorizationError unless ``can_decide`` holds"""
        if not self.is_approver(actor):
            logger.warning(
                f"Decision denied: {actor.user_id} holds no approver role",
                extra={"actor_id": actor.user_id, "workflow_id": workflow.workflow_id}
            )
            raise AuthorizationError(
                "You are not allowed to approve or reject workflows",
                details={"required_roles": self.approver_roles}
            )
        if not self.allow_self_approval and self._is_same_user(actor, workflow.requester_id):
            logger.warning(
                f"Decision denied: {actor.user_id} requested workflow {workflow.workflow_id}",
                extra={"actor_id": actor.user_id, "workflow_id": workflow.workflow_id}
            )
            raise AuthorizationError(
                "You cannot decide your own request",
                details={"workflow_id": workflow.workflow_id}
            )
