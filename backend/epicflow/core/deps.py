from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from epicflow.core import messages
from epicflow.core.context import AppContext
from epicflow.db.session import get_db
from epicflow.services.access import Action, ResourceName, action_for_method, is_allowed
from epicflow.services.identity import Identity, resolve_bearer_token
from epicflow.services.oracle import FactSync

__all__ = ["authorize", "get_context", "get_current_identity", "get_db", "get_facts"]

bearer_scheme = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_facts(context: AppContext = Depends(get_context)) -> FactSync:
    return context.facts


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    context: AppContext = Depends(get_context),
) -> Identity:
    token = credentials.credentials if credentials else None
    identity = resolve_bearer_token(context.settings, token)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=messages.UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def authorize(resource: ResourceName, action: Action | None = None, instance_param: str | None = None):
    """Route-level gate: one oracle check for ``(resource, action)``.

    Without an explicit ``action`` it is derived from the request method and
    path, so ``PATCH /tasks/{id}/assign`` checks ``assign``.

    With ``instance_param`` the check targets the instance named by that path
    parameter for every caller below Admin.
    """

    def _checker(
        request: Request,
        identity: Identity = Depends(get_current_identity),
        context: AppContext = Depends(get_context),
    ) -> Identity:
        checked = action or action_for_method(request.method, request.url.path)
        if checked is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=messages.PERMISSION_DENIED)
        instance_key = request.path_params.get(instance_param) if instance_param else None
        if not is_allowed(context.oracle, identity, resource, checked, instance_key):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=messages.PERMISSION_DENIED)
        return identity

    return _checker
