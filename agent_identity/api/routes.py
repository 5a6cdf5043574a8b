"""HTTP route definitions for the agent identity service."""

from __future__ import annotations

import hashlib
import logging

from dataclasses import dataclass
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, EmailStr, Field

from ..bootstrap import IdentityServices
from ..config import get_settings
from ..domain.contracts import (
    UNSET,
    CreateAgentInput,
    InvitationInput,
    ProfileUpdate,
    RegistrationInput,
)
from ..domain.invitations import InvitationErrorCode
from ..domain.models import (
    Agent,
    AgentRole,
    AgentStatus,
    Availability,
    Invitation,
    InvitationState,
    Session,
    role_value,
)
from ..domain.permissions import ALL_PERMISSIONS, has_permission
from ..errors import (
    AccountInactiveError,
    AccountLockedError,
    AgentIdentityError,
    AgentInactiveError,
    AlreadyExistsError,
    CrossTenantViolation,
    InvalidCredentialsError,
    InvitationAlreadyUsedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    NotFoundError,
    StorageError,
)
from ..metrics import CROSS_TENANT_VIOLATIONS, LOGIN_ATTEMPTS, RATE_LIMITED, SESSIONS_REVOKED
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

MIN_SECRET_LENGTH = 8


class AgentResponse(BaseModel):
    """Serialised representation of an `Agent`; never includes credentials."""

    id: str
    account_id: str
    email: str
    display_name: str
    avatar_ref: str | None
    role: str
    custom_role_id: str | None
    availability: Availability
    status: AgentStatus
    last_activity_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, agent: Agent) -> "AgentResponse":
        return cls(
            id=agent.id,
            account_id=agent.account_id,
            email=agent.email,
            display_name=agent.display_name,
            avatar_ref=agent.avatar_ref,
            role=role_value(agent.role),
            custom_role_id=agent.custom_role_id,
            availability=agent.availability,
            status=agent.status,
            last_activity_at=agent.last_activity_at,
            created_at=agent.created_at,
            updated_at=agent.updated_at,
        )


class InvitationResponse(BaseModel):
    id: str
    account_id: str
    email: str | None
    role: str
    custom_role_id: str | None
    expires_at: datetime
    used_at: datetime | None
    created_by: str
    created_at: datetime
    token: str | None = None

    @classmethod
    def from_domain(cls, invitation: Invitation, *, include_token: bool = False) -> "InvitationResponse":
        """Build a response model; the raw token is only exposed on creation."""
        return cls(
            id=invitation.id,
            account_id=invitation.account_id,
            email=invitation.email,
            role=role_value(invitation.role),
            custom_role_id=invitation.custom_role_id,
            expires_at=invitation.expires_at,
            used_at=invitation.used_at,
            created_by=invitation.created_by,
            created_at=invitation.created_at,
            token=invitation.token if include_token else None,
        )


class SessionResponse(BaseModel):
    """Bearer session issued after login or registration."""

    token: str
    expires_at: datetime
    agent: AgentResponse
    permissions: list[str]


class LoginRequest(BaseModel):
    account_id: str
    email: EmailStr
    password: str


class RegistrationRequest(BaseModel):
    """Invitee payload; role and account always come from the invitation."""

    email: EmailStr
    password: str = Field(..., min_length=MIN_SECRET_LENGTH)
    display_name: str = Field(..., min_length=1)
    avatar_ref: str | None = None


class InvitationCheckResponse(BaseModel):
    valid: bool
    role: str | None = None
    email: str | None = None
    expires_at: datetime | None = None
    error: InvitationErrorCode | None = None


class CreateInvitationRequest(BaseModel):
    email: EmailStr | None = None
    role: AgentRole = AgentRole.agent
    custom_role_id: str | None = None


class CreateAgentRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_SECRET_LENGTH)
    display_name: str = Field(..., min_length=1)
    role: AgentRole = AgentRole.agent
    custom_role_id: str | None = None
    avatar_ref: str | None = None


class ProfileUpdateRequest(BaseModel):
    """Partial profile update; omitted fields are left untouched."""

    display_name: str | None = Field(default=None, min_length=1)
    avatar_ref: str | None = None
    availability: Availability | None = None

    def to_domain(self) -> ProfileUpdate:
        fields = self.model_fields_set
        return ProfileUpdate(
            display_name=self.display_name if "display_name" in fields and self.display_name else UNSET,
            avatar_ref=self.avatar_ref if "avatar_ref" in fields else UNSET,
            availability=self.availability if "availability" in fields and self.availability else UNSET,
        )


class RoleUpdateRequest(BaseModel):
    role: AgentRole
    custom_role_id: str | None = None


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=MIN_SECRET_LENGTH)


class PermissionsResponse(BaseModel):
    permissions: list[str]


settings = get_settings()


def _build_rate_limiter() -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - redis optional in dev
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def _enforce_rate_limit(endpoint: str, key: str) -> None:
    if not rate_limiter.allow(key):
        RATE_LIMITED.labels(endpoint=endpoint).inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


def get_services(request: Request) -> IdentityServices:
    """Resolve the `IdentityServices` stored on the FastAPI application state."""
    services: IdentityServices = request.app.state.identity
    return services


@dataclass
class CurrentAgent:
    """Authenticated caller resolved from the bearer session token."""

    agent: Agent
    session: Session
    permissions: list[str]


def get_current_agent(
    authorization: str | None = Header(default=None),
    services: IdentityServices = Depends(get_services),
) -> CurrentAgent:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    session = services.sessions.validate(token.strip())
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid or expired session")
    agent = services.agents.find(session.agent_id)
    if agent is None or not agent.is_active:
        services.sessions.revoke(session.id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="agent unavailable")
    account = services.agents.find_account(agent.account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "ACCOUNT_NOT_FOUND", "message": "account not found"},
        )
    if not account.is_active:
        logger.warning("request refused: account %s is %s", account.id, account.status)
        raise _http_error(AccountInactiveError(account.id))
    return CurrentAgent(
        agent=agent,
        session=session,
        permissions=services.permissions.resolve(agent),
    )


def require_permission(permission: str):
    """Dependency factory rejecting callers that lack ``permission``."""

    def dependency(current: CurrentAgent = Depends(get_current_agent)) -> CurrentAgent:
        if not has_permission(current.permissions, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "FORBIDDEN", "message": f"requires {permission}"},
            )
        return current

    return dependency


def _scoped_agent(services: IdentityServices, current: CurrentAgent, agent_id: str) -> Agent:
    """Load an agent of the caller's account; other accounts read as not found."""
    agent = services.agents.find(agent_id)
    if agent is None or agent.account_id != current.agent.account_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "AGENT_NOT_FOUND", "message": "agent not found"},
        )
    return agent


def _open_session(services: IdentityServices, agent: Agent, request: Request) -> SessionResponse:
    session = services.sessions.create(
        agent,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return SessionResponse(
        token=session.token,
        expires_at=session.expires_at,
        agent=AgentResponse.from_domain(agent),
        permissions=services.permissions.resolve(agent),
    )


@router.post("/auth/login", response_model=SessionResponse)
def login(
    payload: LoginRequest,
    request: Request,
    services: IdentityServices = Depends(get_services),
) -> SessionResponse:
    """Authenticate an agent and open a session."""
    limiter_key = f"login:{payload.account_id}:{payload.email.lower()}"
    _enforce_rate_limit("login", limiter_key)
    try:
        agent = services.agents.authenticate(payload.account_id, payload.email, payload.password)
    except AgentIdentityError as exc:
        LOGIN_ATTEMPTS.labels(outcome=exc.code.lower()).inc()
        raise _http_error(exc) from exc
    LOGIN_ATTEMPTS.labels(outcome="success").inc()
    rate_limiter.reset(limiter_key)
    logger.info("agent %s logged in", agent.id)
    return _open_session(services, agent, request)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    current: CurrentAgent = Depends(get_current_agent),
    services: IdentityServices = Depends(get_services),
) -> Response:
    """Mark the caller offline and end the presented session."""
    try:
        services.agents.update_profile(current.agent.id, ProfileUpdate(availability=Availability.offline))
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    if services.sessions.revoke(current.session.id):
        SESSIONS_REVOKED.inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/auth/me", response_model=SessionResponse)
def me(current: CurrentAgent = Depends(get_current_agent)) -> SessionResponse:
    return SessionResponse(
        token=current.session.token,
        expires_at=current.session.expires_at,
        agent=AgentResponse.from_domain(current.agent),
        permissions=current.permissions,
    )


@router.put("/auth/profile", response_model=AgentResponse)
def update_own_profile(
    payload: ProfileUpdateRequest,
    current: CurrentAgent = Depends(get_current_agent),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    """Update the caller's display name, avatar or availability."""
    try:
        agent = services.agents.update_profile(current.agent.id, payload.to_domain())
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return AgentResponse.from_domain(agent)


@router.put("/auth/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: PasswordChangeRequest,
    current: CurrentAgent = Depends(get_current_agent),
    services: IdentityServices = Depends(get_services),
) -> Response:
    """Replace the caller's secret; every session, this one included, is revoked."""
    limiter_key = f"password:{current.agent.id}"
    _enforce_rate_limit("password", limiter_key)
    if services.agents.check_locked(current.agent.id):
        raise _http_error(AccountLockedError(current.agent.id, current.agent.locked_until))
    if not services.agents.verify_credential(current.agent, payload.current_password):
        services.agents.record_failed_login(current.agent.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CREDENTIALS", "message": "current password is incorrect"},
        )
    try:
        services.agents.change_credential(current.agent.id, payload.new_password)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    services.agents.reset_failed_logins(current.agent.id)
    rate_limiter.reset(limiter_key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/invitations/{token}", response_model=InvitationCheckResponse)
def check_invitation(
    token: str,
    services: IdentityServices = Depends(get_services),
) -> InvitationCheckResponse:
    """Report whether an invitation token can still be used."""
    result = services.invitations.validate(token)
    if not result.valid:
        return InvitationCheckResponse(valid=False, error=result.error)
    invitation = result.invitation
    return InvitationCheckResponse(
        valid=True,
        role=role_value(invitation.role),
        email=invitation.email,
        expires_at=invitation.expires_at,
    )


@router.post(
    "/invitations/{token}/register",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(
    token: str,
    payload: RegistrationRequest,
    request: Request,
    services: IdentityServices = Depends(get_services),
) -> SessionResponse:
    """Consume an invitation, create the agent and open its first session."""
    token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
    _enforce_rate_limit("register", f"register:{token_hash}")
    try:
        agent = services.invitations.complete_registration(
            token,
            RegistrationInput(
                email=payload.email,
                secret=payload.password,
                display_name=payload.display_name,
                avatar_ref=payload.avatar_ref,
            ),
        )
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return _open_session(services, agent, request)


@router.post(
    "/accounts/{account_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_invitation(
    account_id: str,
    payload: CreateInvitationRequest,
    current: CurrentAgent = Depends(require_permission("agents:create")),
    services: IdentityServices = Depends(get_services),
) -> InvitationResponse:
    """Invite a future agent into ``account_id``; only owners may invite privileged roles."""
    if payload.role in (AgentRole.owner, AgentRole.administrator) and current.agent.role != AgentRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "only owners can invite owners or administrators"},
        )
    try:
        session_tenant = services.invitations.tenant_of(current.agent.account_id)
        target_tenant = services.invitations.tenant_of(account_id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    if account_id != current.agent.account_id and target_tenant == session_tenant:
        logger.warning("agent %s refused invitation into sibling account %s", current.agent.id, account_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "invitations are limited to your own account"},
        )
    try:
        invitation = services.invitations.create(
            account_id,
            InvitationInput(
                role=payload.role,
                email=payload.email,
                custom_role_id=payload.custom_role_id,
            ),
            created_by=current.agent.id,
            session_tenant_id=session_tenant,
        )
    except CrossTenantViolation as exc:
        CROSS_TENANT_VIOLATIONS.inc()
        raise _http_error(exc) from exc
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return InvitationResponse.from_domain(invitation, include_token=True)


@router.get("/account/invitations", response_model=list[InvitationResponse])
def list_invitations(
    state: InvitationState | None = Query(default=None),
    current: CurrentAgent = Depends(require_permission("agents:view")),
    services: IdentityServices = Depends(get_services),
) -> list[InvitationResponse]:
    invitations = services.invitations.list_for_account(current.agent.account_id, state)
    return [InvitationResponse.from_domain(invitation) for invitation in invitations]


@router.delete("/account/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invitation(
    invitation_id: str,
    current: CurrentAgent = Depends(require_permission("agents:create")),
    services: IdentityServices = Depends(get_services),
) -> Response:
    try:
        invitation = services.invitations.get(invitation_id)
        if invitation.account_id != current.agent.account_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "INVITATION_NOT_FOUND", "message": "invitation not found"},
            )
        services.invitations.delete(invitation_id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/agents", response_model=list[AgentResponse])
def list_agents(
    status_filter: AgentStatus | None = Query(default=None, alias="status"),
    role: AgentRole | None = Query(default=None),
    availability: Availability | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    current: CurrentAgent = Depends(require_permission("agents:view")),
    services: IdentityServices = Depends(get_services),
) -> list[AgentResponse]:
    agents = services.agents.list_agents(
        current.agent.account_id,
        status=status_filter,
        role=role,
        availability=availability,
        limit=limit,
        offset=offset,
    )
    return [AgentResponse.from_domain(agent) for agent in agents]


@router.post("/agents", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
def create_agent(
    payload: CreateAgentRequest,
    current: CurrentAgent = Depends(require_permission("agents:create")),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    """Provision an agent with credentials directly in the caller's account."""
    if payload.role is AgentRole.owner and current.agent.role != AgentRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "only owners can create owners"},
        )
    try:
        agent = services.agents.create_direct(
            current.agent.account_id,
            CreateAgentInput(
                email=payload.email,
                secret=payload.password,
                display_name=payload.display_name,
                role=payload.role,
                custom_role_id=payload.custom_role_id,
                avatar_ref=payload.avatar_ref,
            ),
        )
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return AgentResponse.from_domain(agent)


@router.get("/agents/{agent_id}", response_model=AgentResponse)
def get_agent(
    agent_id: str,
    current: CurrentAgent = Depends(require_permission("agents:view")),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    return AgentResponse.from_domain(_scoped_agent(services, current, agent_id))


@router.get("/agents/{agent_id}/permissions", response_model=PermissionsResponse)
def get_agent_permissions(
    agent_id: str,
    current: CurrentAgent = Depends(require_permission("agents:view")),
    services: IdentityServices = Depends(get_services),
) -> PermissionsResponse:
    agent = _scoped_agent(services, current, agent_id)
    return PermissionsResponse(permissions=services.agents.permissions_for(agent.id))


@router.put("/agents/{agent_id}", response_model=AgentResponse)
def update_agent(
    agent_id: str,
    payload: ProfileUpdateRequest,
    current: CurrentAgent = Depends(require_permission("agents:edit")),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    agent = _scoped_agent(services, current, agent_id)
    try:
        updated = services.agents.update_profile(agent.id, payload.to_domain())
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return AgentResponse.from_domain(updated)


@router.put("/agents/{agent_id}/role", response_model=AgentResponse)
def update_agent_role(
    agent_id: str,
    payload: RoleUpdateRequest,
    current: CurrentAgent = Depends(get_current_agent),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    """Change an agent's role; restricted to owners and administrators."""
    if current.agent.role not in (AgentRole.owner, AgentRole.administrator):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "only owners and administrators can change roles"},
        )
    if payload.role in (AgentRole.owner, AgentRole.administrator) and current.agent.role != AgentRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "only owners can grant owner or administrator"},
        )
    agent = _scoped_agent(services, current, agent_id)
    if agent.role == AgentRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "the owner role cannot be changed"},
        )
    try:
        updated = services.agents.update_role(agent.id, payload.role, payload.custom_role_id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return AgentResponse.from_domain(updated)


@router.post("/agents/{agent_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_agent(
    agent_id: str,
    current: CurrentAgent = Depends(require_permission("agents:delete")),
    services: IdentityServices = Depends(get_services),
) -> Response:
    agent = _guard_removal(services, current, agent_id)
    try:
        services.agents.deactivate(agent.id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    logger.info("agent %s deactivated by %s", agent.id, current.agent.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/agents/{agent_id}/activate", response_model=AgentResponse)
def activate_agent(
    agent_id: str,
    current: CurrentAgent = Depends(require_permission("agents:edit")),
    services: IdentityServices = Depends(get_services),
) -> AgentResponse:
    agent = _scoped_agent(services, current, agent_id)
    try:
        activated = services.agents.activate(agent.id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    return AgentResponse.from_domain(activated)


@router.delete("/agents/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_agent(
    agent_id: str,
    current: CurrentAgent = Depends(require_permission("agents:delete")),
    services: IdentityServices = Depends(get_services),
) -> Response:
    """Hard-delete an agent after revoking its sessions."""
    agent = _guard_removal(services, current, agent_id)
    try:
        services.sessions.revoke_all(agent.id)
        services.agents.delete(agent.id)
    except AgentIdentityError as exc:
        raise _http_error(exc) from exc
    logger.info("agent %s deleted by %s", agent.id, current.agent.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/permissions", response_model=PermissionsResponse)
def list_permissions(_: CurrentAgent = Depends(get_current_agent)) -> PermissionsResponse:
    """Return the catalogue of capabilities assignable to custom roles."""
    return PermissionsResponse(permissions=list(ALL_PERMISSIONS))


def _guard_removal(services: IdentityServices, current: CurrentAgent, agent_id: str) -> Agent:
    agent = _scoped_agent(services, current, agent_id)
    if agent.id == current.agent.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "CANNOT_REMOVE_SELF", "message": "agents cannot remove themselves"},
        )
    if agent.role == AgentRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "the account owner cannot be removed"},
        )
    return agent


_STATUS_BY_ERROR: tuple[tuple[type[AgentIdentityError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvitationNotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyExistsError, status.HTTP_409_CONFLICT),
    (InvitationAlreadyUsedError, status.HTTP_409_CONFLICT),
    (InvitationExpiredError, status.HTTP_410_GONE),
    (AccountLockedError, status.HTTP_423_LOCKED),
    (CrossTenantViolation, status.HTTP_403_FORBIDDEN),
    (AgentInactiveError, status.HTTP_403_FORBIDDEN),
    (AccountInactiveError, status.HTTP_403_FORBIDDEN),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error(exc: AgentIdentityError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    if status_code >= 500:
        logger.error("identity operation failed: %s", exc)
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": str(exc)})
