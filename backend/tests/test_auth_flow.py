import pytest

from backend.app.auth.flow import AuthFlow, AuthStep
from backend.app.auth.models import OtpType, Role, User
from backend.app.auth.passwords import hash_password, verify_password
from backend.app.auth.service import AuthService, Registration
from backend.app.core.errors import AuthenticationFailed, InvalidTransition, ValidationFailed

pytestmark = pytest.mark.asyncio


@pytest.fixture
def service(store):
    return AuthService(store)


@pytest.fixture
def member(store):
    user = User(
        id="u-1",
        email="sam@example.com",
        is_verified=True,
        password_hash=hash_password("hunter22"),
        first_name="Sam",
    )
    store.users[user.email] = user
    return user


def registration(**overrides):
    fields = dict(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        password="engine1",
        confirm_password="engine1",
    )
    fields.update(overrides)
    return Registration(**fields)


async def test_first_login_goes_through_set_password(store, service):
    flow = AuthFlow()

    outcome = await flow.submit_email(service, "  New@Example.com ")
    assert outcome.step is AuthStep.OTP
    assert flow.email == "new@example.com"
    assert store.otps[-1].otp_type is OtpType.FIRST_LOGIN

    outcome = await flow.submit_code(service, store.latest_code("new@example.com"))
    assert outcome.step is AuthStep.SET_PASSWORD
    assert outcome.session is None

    outcome = await flow.submit_new_password(service, "sunny1", "sunny1")
    assert outcome.session.email == "new@example.com"
    assert outcome.landing == "/yachts"
    assert flow.completed

    user = store.users["new@example.com"]
    assert user.is_verified
    assert verify_password("sunny1", user.password_hash)


async def test_password_login(member, service):
    flow = AuthFlow()

    outcome = await flow.submit_email(service, member.email)
    assert outcome.step is AuthStep.PASSWORD

    with pytest.raises(AuthenticationFailed, match="Invalid email or password"):
        await flow.submit_password(service, "wrong-one")

    outcome = await flow.submit_password(service, "hunter22")
    assert outcome.session.user_id == member.id
    assert outcome.session.first_name == "Sam"


async def test_login_code_still_requires_password(store, member, service):
    flow = AuthFlow()

    outcome = await flow.request_code(service, member.email)
    assert store.otps[-1].otp_type is OtpType.LOGIN
    assert outcome.step is AuthStep.OTP

    outcome = await flow.submit_code(service, store.latest_code(member.email))
    assert outcome.step is AuthStep.PASSWORD
    assert outcome.session is None
    assert not flow.completed

    with pytest.raises(InvalidTransition):
        await flow.submit_new_password(service, "other1", "other1")

    outcome = await flow.submit_password(service, "hunter22")
    assert outcome.session is not None


async def test_invalid_code_rejected_generically(store, service):
    flow = AuthFlow()
    await flow.submit_email(service, "new@example.com")

    with pytest.raises(ValidationFailed, match="6-digit"):
        await flow.submit_code(service, "12ab")

    wrong = "000000" if store.latest_code("new@example.com") != "000000" else "111111"
    with pytest.raises(AuthenticationFailed, match="Invalid or expired OTP"):
        await flow.submit_code(service, wrong)
    assert flow.step is AuthStep.OTP


async def test_register_then_first_login(store, service):
    flow = AuthFlow()
    flow.go(AuthStep.REGISTER)

    outcome = await flow.register(service, registration(phone=" 555-0100 "))
    assert outcome.step is AuthStep.OTP

    user = store.users["ada@example.com"]
    assert (user.first_name, user.last_name, user.phone) == ("Ada", "Lovelace", "555-0100")
    assert not user.has_password
    assert store.otps[-1].otp_type is OtpType.FIRST_LOGIN

    outcome = await flow.submit_code(service, store.latest_code("ada@example.com"))
    assert outcome.step is AuthStep.SET_PASSWORD


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"first_name": " "}, "fill all required fields"),
        ({"email": ""}, "fill all required fields"),
        ({"password": "abc", "confirm_password": "abc"}, "at least 6"),
        ({"confirm_password": "engine2"}, "do not match"),
        ({"email": "not-an-email"}, "valid email"),
    ],
)
async def test_register_validation(store, service, overrides, message):
    flow = AuthFlow()
    flow.go(AuthStep.REGISTER)

    with pytest.raises(ValidationFailed, match=message):
        await flow.register(service, registration(**overrides))
    assert flow.step is AuthStep.REGISTER
    assert store.users == {}
    assert store.otps == []


async def test_register_existing_email(member, service):
    flow = AuthFlow(AuthStep.REGISTER)

    with pytest.raises(ValidationFailed, match="already exists"):
        await flow.register(service, registration(email=member.email))


async def test_password_reset(store, member, service):
    flow = AuthFlow()
    flow.go(AuthStep.FORGOT_PASSWORD)

    await flow.forgot_password(service, member.email)
    assert store.otps[-1].otp_type is OtpType.PASSWORD_RESET

    outcome = await flow.submit_code(service, store.latest_code(member.email))
    assert outcome.step is AuthStep.SET_PASSWORD

    with pytest.raises(ValidationFailed, match="do not match"):
        await flow.submit_new_password(service, "fresh12", "fresh13")

    outcome = await flow.submit_new_password(service, "fresh12", "fresh12")
    assert outcome.session.email == member.email
    assert verify_password("fresh12", store.users[member.email].password_hash)
    assert not verify_password("hunter22", store.users[member.email].password_hash)


async def test_password_reset_for_unknown_email_looks_the_same(store, service):
    flow = AuthFlow(AuthStep.FORGOT_PASSWORD)

    outcome = await flow.forgot_password(service, "ghost@example.com")

    assert outcome.step is AuthStep.OTP
    assert outcome.issued is None
    assert store.otps == []
    assert "ghost@example.com" not in store.users
    with pytest.raises(AuthenticationFailed):
        await flow.submit_code(service, "123456")


async def test_resend_keeps_code_type(store, member, service):
    flow = AuthFlow(AuthStep.FORGOT_PASSWORD)
    await flow.forgot_password(service, member.email)

    outcome = await flow.resend_code(service)

    assert outcome.step is AuthStep.OTP
    assert [o.otp_type for o in store.otps] == [OtpType.PASSWORD_RESET, OtpType.PASSWORD_RESET]


async def test_admin_lands_in_admin_area(store, service):
    store.users["boss@example.com"] = User(
        id="a-1", email="boss@example.com", role=Role.ADMIN, password_hash=hash_password("topsecret")
    )
    flow = AuthFlow()
    await flow.submit_email(service, "boss@example.com")

    outcome = await flow.submit_password(service, "topsecret")

    assert outcome.landing == "/admin"


async def test_back_returns_to_login_and_drops_code_state(store, service):
    flow = AuthFlow()
    await flow.submit_email(service, "new@example.com")
    assert flow.step is AuthStep.OTP

    flow.back()

    assert flow.step is AuthStep.LOGIN
    assert flow.pending_otp_type is None
    with pytest.raises(InvalidTransition):
        flow.back()


async def test_navigation_rules():
    flow = AuthFlow()

    with pytest.raises(InvalidTransition):
        flow.go(AuthStep.SET_PASSWORD)

    flow.go(AuthStep.REGISTER)
    with pytest.raises(InvalidTransition):
        flow.go(AuthStep.FORGOT_PASSWORD)

    flow.back()
    flow.go(AuthStep.FORGOT_PASSWORD)
    assert flow.step is AuthStep.FORGOT_PASSWORD


async def test_set_password_needs_verified_code(store, service):
    store.users["new@example.com"] = User(id="u-9", email="new@example.com")
    flow = AuthFlow(AuthStep.SET_PASSWORD, email="new@example.com")

    with pytest.raises(InvalidTransition, match="Verify your code"):
        await flow.submit_new_password(service, "sunny1", "sunny1")
    assert not store.users["new@example.com"].has_password


async def test_restored_flow_continues(store, service):
    flow = AuthFlow()
    await flow.submit_email(service, "new@example.com")

    restored = AuthFlow.from_dict(flow.to_dict())
    outcome = await restored.submit_code(service, store.latest_code("new@example.com"))

    assert outcome.step is AuthStep.SET_PASSWORD
    assert restored.verified_otp_type is OtpType.FIRST_LOGIN


async def test_completed_flow_is_closed(member, service):
    flow = AuthFlow()
    await flow.submit_email(service, member.email)
    await flow.submit_password(service, "hunter22")

    with pytest.raises(InvalidTransition):
        await flow.submit_password(service, "hunter22")
    with pytest.raises(InvalidTransition):
        flow.back()
