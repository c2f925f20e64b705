import logging

from fastapi import APIRouter, Depends, status

from backend.app.auth.flow import AuthFlow, StepOutcome
from backend.app.auth.models import Session
from backend.app.auth.service import AuthService, Registration
from backend.app.auth.sessions import RedisFlowStore, RedisSessionStore, SessionState
from backend.app.core.config import settings
from backend.app.core.errors import NotFound
from backend.app.routers.deps import (
    get_auth_service,
    get_flow_store,
    get_session_store,
    peek_session,
    require_user,
)
from backend.app.routers.schemas import (
    EmailIn,
    FlowOut,
    NavigateIn,
    NewPasswordIn,
    OtpIn,
    PasswordIn,
    RegisterIn,
    SessionOut,
    SessionStatusOut,
    SessionUserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

STEP_MESSAGES = {
    "otp": "OTP sent to your email",
    "password": "Enter your password to sign in",
    "set-password": "Create a new password for your account",
}


def session_user_out(session: Session) -> SessionUserOut:
    return SessionUserOut(
        id=session.user_id,
        email=session.email,
        role=session.role,
        is_verified=session.is_verified,
        first_name=session.first_name,
        last_name=session.last_name,
    )


async def _load_flow(flows: RedisFlowStore, flow_id: str) -> AuthFlow:
    data = await flows.load(flow_id)
    if data is None:
        raise NotFound("Sign-in flow not found or expired")
    return AuthFlow.from_dict(data)


async def _respond(
    flow_id: str,
    flow: AuthFlow,
    outcome: StepOutcome,
    flows: RedisFlowStore,
    sessions: RedisSessionStore,
) -> FlowOut:
    out = FlowOut(flow_id=flow_id, step=flow.step, email=flow.email)

    if outcome.session is not None:
        token = sessions.new_token()
        await sessions.save(token, outcome.session)
        await flows.clear(flow_id)
        logger.info("Session established for %s (%s)", outcome.session.email, outcome.session.role.value)
        out.session = SessionOut(
            token=token,
            landing=outcome.landing,
            user=session_user_out(outcome.session),
            expires_in_seconds=int(sessions.policy.timeout),
        )
        out.message = "Welcome back!"
        return out

    await flows.save(flow_id, flow.to_dict())
    out.message = STEP_MESSAGES.get(flow.step.value)
    if outcome.issued is not None and settings.DEV_EXPOSE_OTP:
        out.dev_code = outcome.issued.code
    return out


@router.post("/flows", response_model=FlowOut, status_code=status.HTTP_201_CREATED)
async def start_flow(flows: RedisFlowStore = Depends(get_flow_store)) -> FlowOut:
    flow_id = flows.new_id()
    flow = AuthFlow()
    await flows.save(flow_id, flow.to_dict())
    return FlowOut(flow_id=flow_id, step=flow.step)


@router.post("/flows/{flow_id}/go", response_model=FlowOut)
async def go_endpoint(
    flow_id: str,
    payload: NavigateIn,
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    return await _respond(flow_id, flow, flow.go(payload.step), flows, sessions)


@router.post("/flows/{flow_id}/back", response_model=FlowOut)
async def back_endpoint(
    flow_id: str,
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    return await _respond(flow_id, flow, flow.back(), flows, sessions)


@router.post("/flows/{flow_id}/login", response_model=FlowOut)
async def login_endpoint(
    flow_id: str,
    payload: EmailIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.submit_email(service, payload.email)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/login-code", response_model=FlowOut)
async def login_code_endpoint(
    flow_id: str,
    payload: EmailIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.request_code(service, payload.email)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/register", response_model=FlowOut)
async def register_endpoint(
    flow_id: str,
    payload: RegisterIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    form = Registration(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        phone=payload.phone,
    )
    outcome = await flow.register(service, form)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/forgot-password", response_model=FlowOut)
async def forgot_password_endpoint(
    flow_id: str,
    payload: EmailIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.forgot_password(service, payload.email)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/otp", response_model=FlowOut)
async def otp_endpoint(
    flow_id: str,
    payload: OtpIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.submit_code(service, payload.code)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/otp/resend", response_model=FlowOut)
async def resend_endpoint(
    flow_id: str,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.resend_code(service)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/password", response_model=FlowOut)
async def password_endpoint(
    flow_id: str,
    payload: PasswordIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.submit_password(service, payload.password)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.post("/flows/{flow_id}/set-password", response_model=FlowOut)
async def set_password_endpoint(
    flow_id: str,
    payload: NewPasswordIn,
    service: AuthService = Depends(get_auth_service),
    flows: RedisFlowStore = Depends(get_flow_store),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> FlowOut:
    flow = await _load_flow(flows, flow_id)
    outcome = await flow.submit_new_password(service, payload.password, payload.confirm_password)
    return await _respond(flow_id, flow, outcome, flows, sessions)


@router.get("/session", response_model=SessionStatusOut)
async def session_status(state: SessionState = Depends(peek_session)) -> SessionStatusOut:
    return SessionStatusOut(
        user=session_user_out(state.session),
        remaining_seconds=int(state.remaining),
        warning=state.warning,
    )


@router.post("/activity", response_model=SessionStatusOut)
async def activity_endpoint(state: SessionState = Depends(require_user)) -> SessionStatusOut:
    return SessionStatusOut(
        user=session_user_out(state.session),
        remaining_seconds=int(state.remaining),
        warning=state.warning,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_endpoint(
    state: SessionState = Depends(peek_session),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> None:
    await sessions.clear(state.token)
    logger.info("Session for %s logged out", state.session.email)
