"""
Unit tests for IdentityService orchestration.

Runs the service against the in-memory record store with a frozen clock
and a mocked e-mail channel to verify:
- Registration state, role profiles and duplicate handling
- Login, enumeration resistance and deactivation
- Verification, resend and OTP expiry
- Password reset and change
- Best-effort notification delivery
"""

from datetime import timedelta
from unittest.mock import Mock, call

import pytest

from marketplace_identity.adapters.repository.memory import InMemoryAccountRepository
from marketplace_identity.domain.exceptions import (
    AccountDeactivated,
    AlreadyVerified,
    ConcurrentUpdate,
    DuplicateEmail,
    ExpiredOTP,
    IncorrectCurrentPassword,
    InvalidCredentials,
    InvalidOTP,
    InvalidSignature,
    NotFoundError,
    StaleAccount,
    ValidationError,
)
from marketplace_identity.domain.hashing import PasswordHasher
from marketplace_identity.domain.identity import IdentityService
from marketplace_identity.domain.notifications import OTPDispatcher
from marketplace_identity.domain.ports import (
    ActivationState,
    OTPPurpose,
    Role,
    VerificationState,
)

PASSWORD = "secret123"


def register_alice(service: IdentityService, **overrides):
    data = {
        "first_name": "Alice",
        "last_name": "Doe",
        "email": "alice@example.com",
        "password": PASSWORD,
    }
    data.update(overrides)
    return service.register(**data)


def verification_code(repository: InMemoryAccountRepository, email: str = "alice@example.com") -> str:
    return repository.find_by_email(email).verification_otp.code


def reset_code(repository: InMemoryAccountRepository, email: str = "alice@example.com") -> str:
    return repository.find_by_email(email).reset_otp.code


class TestRegister:
    """Tests for account registration."""

    def test_new_account_is_unverified_and_active(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service)

        account = repository.find_by_id(view.id)
        assert account.verification_state is VerificationState.UNVERIFIED
        assert account.activation_state is ActivationState.ACTIVE
        assert view.is_verified is False

    def test_verification_code_expires_ten_minutes_after_issue(
        self, service: IdentityService, repository: InMemoryAccountRepository, clock
    ) -> None:
        register_alice(service)

        otp = repository.find_by_email("alice@example.com").verification_otp
        assert otp.purpose is OTPPurpose.VERIFICATION
        assert otp.issued_at == clock.now
        assert otp.expires_at == clock.now + timedelta(minutes=10)

    def test_email_is_normalized(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service, email="  Alice@Example.COM ")
        assert view.email == "alice@example.com"
        assert repository.find_by_email("alice@example.com") is not None

    def test_password_is_stored_hashed(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        account = repository.find_by_email("alice@example.com")
        assert account.password_hash != PASSWORD
        assert service.hasher.verify(PASSWORD, account.password_hash)

    def test_default_role_is_customer(self, service: IdentityService) -> None:
        assert register_alice(service).role is Role.CUSTOMER

    @pytest.mark.parametrize("role", [Role.CUSTOMER, Role.RIDER])
    def test_role_profile_created(
        self, service: IdentityService, repository: InMemoryAccountRepository, role: Role
    ) -> None:
        view = register_alice(service, role=role)
        profile = repository.profiles[view.id]
        assert profile.role is role
        assert profile.business_name is None

    def test_vendor_profile_gets_kitchen_name(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service, role=Role.VENDOR)
        assert repository.profiles[view.id].business_name == "Alice Doe's Kitchen"

    def test_admin_has_no_profile(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service, role=Role.ADMIN)
        assert view.id not in repository.profiles

    def test_duplicate_email_rejected(self, service: IdentityService) -> None:
        register_alice(service)
        with pytest.raises(DuplicateEmail):
            register_alice(service, first_name="Other", password="different-password")

    def test_duplicate_email_rejected_case_insensitively(self, service: IdentityService) -> None:
        register_alice(service)
        with pytest.raises(DuplicateEmail):
            register_alice(service, email="ALICE@example.com", role=Role.VENDOR)

    def test_duplicate_does_not_send_code(
        self, service: IdentityService, dispatcher: OTPDispatcher, email_sender: Mock
    ) -> None:
        register_alice(service)
        with pytest.raises(DuplicateEmail):
            register_alice(service)
        dispatcher.close()
        assert email_sender.send_otp.call_count == 1

    def test_short_password_rejected(self, service: IdentityService) -> None:
        with pytest.raises(ValidationError):
            register_alice(service, password="12345")

    def test_password_over_72_bytes_rejected(self, service: IdentityService) -> None:
        with pytest.raises(ValidationError):
            register_alice(service, password="é" * 40)

    def test_blank_names_rejected(self, service: IdentityService) -> None:
        with pytest.raises(ValidationError):
            register_alice(service, first_name="   ")

    def test_phone_is_stored(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service, phone=" +15550100 ")
        assert repository.find_by_id(view.id).phone == "+15550100"

    def test_phone_uniqueness_not_enforced(self, service: IdentityService) -> None:
        register_alice(service, phone="+15550100")
        register_alice(service, email="bob@example.com", phone="+15550100")


class TestRegisterNotification:
    """Tests for best-effort delivery of the verification code."""

    def test_code_sent_to_normalized_email(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        dispatcher: OTPDispatcher,
        email_sender: Mock,
    ) -> None:
        register_alice(service, email=" ALICE@example.com")
        dispatcher.close()

        email_sender.send_otp.assert_called_once_with(
            "alice@example.com", verification_code(repository), OTPPurpose.VERIFICATION
        )

    def test_delivery_failure_does_not_fail_registration(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        dispatcher: OTPDispatcher,
        email_sender: Mock,
    ) -> None:
        email_sender.send_otp.side_effect = RuntimeError("smtp down")

        view = register_alice(service)
        dispatcher.close()

        account = repository.find_by_id(view.id)
        assert account is not None
        assert account.verification_otp is not None


class TestLogin:
    """Tests for password login."""

    def test_login_returns_token_for_account(
        self, service: IdentityService, token_issuer
    ) -> None:
        view = register_alice(service)

        result = service.login("alice@example.com", PASSWORD)

        assert result.account.id == view.id
        assert token_issuer.decode(result.session.token).subject == view.id

    def test_unverified_account_can_log_in(self, service: IdentityService) -> None:
        register_alice(service)
        result = service.login("alice@example.com", PASSWORD)
        assert result.account.is_verified is False

    def test_login_updates_last_login(
        self, service: IdentityService, repository: InMemoryAccountRepository, clock
    ) -> None:
        register_alice(service)
        clock.advance(minutes=3)

        service.login("alice@example.com", PASSWORD)

        assert repository.find_by_email("alice@example.com").last_login_at == clock.now

    def test_login_email_case_insensitive(self, service: IdentityService) -> None:
        register_alice(service)
        service.login(" Alice@EXAMPLE.com ", PASSWORD)

    def test_wrong_password_and_unknown_email_are_indistinguishable(
        self, service: IdentityService
    ) -> None:
        register_alice(service)

        with pytest.raises(InvalidCredentials) as wrong_password:
            service.login("alice@example.com", "not-the-password")
        with pytest.raises(InvalidCredentials) as unknown_email:
            service.login("nobody@example.com", PASSWORD)

        assert type(wrong_password.value) is type(unknown_email.value)
        assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"

    def test_unknown_email_still_spends_bcrypt(self, service: IdentityService) -> None:
        service.hasher = Mock(wraps=service.hasher)
        with pytest.raises(InvalidCredentials):
            service.login("nobody@example.com", PASSWORD)
        service.hasher.burn.assert_called_once_with(PASSWORD)

    def test_deactivated_account_rejected_with_correct_password(
        self, service: IdentityService
    ) -> None:
        view = register_alice(service)
        service.deactivate(view.id)

        with pytest.raises(AccountDeactivated):
            service.login("alice@example.com", PASSWORD)

    def test_deactivated_account_rejected_with_wrong_password(
        self, service: IdentityService
    ) -> None:
        view = register_alice(service)
        service.deactivate(view.id)

        with pytest.raises(AccountDeactivated):
            service.login("alice@example.com", "not-the-password")

    def test_reactivated_account_can_log_in(self, service: IdentityService) -> None:
        view = register_alice(service)
        service.deactivate(view.id)
        service.reactivate(view.id)
        service.login("alice@example.com", PASSWORD)


class TestVerifyAccount:
    """Tests for OTP verification."""

    def test_correct_code_verifies_and_returns_token(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        token_issuer,
    ) -> None:
        view = register_alice(service)

        result = service.verify_account("alice@example.com", verification_code(repository))

        account = repository.find_by_id(view.id)
        assert account.is_verified
        assert account.verification_otp is None
        assert result.account.is_verified is True
        assert token_issuer.decode(result.session.token).subject == view.id

    def test_reusing_consumed_code_fails(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        code = verification_code(repository)
        service.verify_account("alice@example.com", code)

        with pytest.raises(AlreadyVerified):
            service.verify_account("alice@example.com", code)

    def test_wrong_code_rejected(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        wrong = "000000" if verification_code(repository) != "000000" else "111111"

        with pytest.raises(InvalidOTP) as exc_info:
            service.verify_account("alice@example.com", wrong)

        assert exc_info.value.message == "Invalid verification code"
        assert not repository.find_by_email("alice@example.com").is_verified

    def test_expired_code_rejected_even_if_matching(
        self, service: IdentityService, repository: InMemoryAccountRepository, clock
    ) -> None:
        register_alice(service)
        code = verification_code(repository)
        clock.advance(minutes=10, seconds=1)

        with pytest.raises(ExpiredOTP) as exc_info:
            service.verify_account("alice@example.com", code)

        assert exc_info.value.message == "Verification code has expired"
        assert not repository.find_by_email("alice@example.com").is_verified

    def test_code_valid_until_expiry(
        self, service: IdentityService, repository: InMemoryAccountRepository, clock
    ) -> None:
        register_alice(service)
        clock.advance(minutes=9, seconds=59)
        service.verify_account("alice@example.com", verification_code(repository))

    def test_unknown_email_not_found(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.verify_account("nobody@example.com", "123456")

    def test_reset_code_cannot_verify_account(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")
        code = reset_code(repository)
        if code == verification_code(repository):
            pytest.skip("codes collided")

        with pytest.raises(InvalidOTP):
            service.verify_account("alice@example.com", code)


class TestResendVerification:
    """Tests for verification code reissue."""

    def test_resend_replaces_code(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        clock,
    ) -> None:
        register_alice(service)
        first = repository.find_by_email("alice@example.com").verification_otp
        clock.advance(minutes=5)

        service.resend_verification("alice@example.com")

        second = repository.find_by_email("alice@example.com").verification_otp
        assert second.issued_at == clock.now
        assert second.expires_at == clock.now + timedelta(minutes=10)
        assert second != first

    def test_old_code_invalid_after_resend(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        old = verification_code(repository)
        service.resend_verification("alice@example.com")
        if verification_code(repository) == old:
            pytest.skip("codes collided")

        with pytest.raises(InvalidOTP):
            service.verify_account("alice@example.com", old)

        service.verify_account("alice@example.com", verification_code(repository))

    def test_resend_delivers_new_code(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        dispatcher: OTPDispatcher,
        email_sender: Mock,
    ) -> None:
        register_alice(service)
        service.resend_verification("alice@example.com")
        dispatcher.close()

        assert email_sender.send_otp.call_args_list[-1] == call(
            "alice@example.com", verification_code(repository), OTPPurpose.VERIFICATION
        )

    def test_resend_for_verified_account_fails(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        service.verify_account("alice@example.com", verification_code(repository))

        with pytest.raises(AlreadyVerified):
            service.resend_verification("alice@example.com")

    def test_resend_unknown_email(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.resend_verification("nobody@example.com")


class TestPasswordReset:
    """Tests for forgot-password and reset-password."""

    def test_reset_with_latest_code_changes_password(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")

        service.reset_password("alice@example.com", reset_code(repository), "brand-new-pw")

        assert repository.find_by_email("alice@example.com").reset_otp is None
        service.login("alice@example.com", "brand-new-pw")
        with pytest.raises(InvalidCredentials):
            service.login("alice@example.com", PASSWORD)

    def test_superseded_reset_code_rejected(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")
        old = reset_code(repository)
        service.forgot_password("alice@example.com")
        if reset_code(repository) == old:
            pytest.skip("codes collided")

        with pytest.raises(InvalidOTP) as exc_info:
            service.reset_password("alice@example.com", old, "brand-new-pw")

        assert exc_info.value.message == "Invalid reset code"

    def test_expired_reset_code_rejected(
        self, service: IdentityService, repository: InMemoryAccountRepository, clock
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")
        clock.advance(minutes=11)

        with pytest.raises(ExpiredOTP) as exc_info:
            service.reset_password("alice@example.com", reset_code(repository), "brand-new-pw")

        assert exc_info.value.message == "Reset code has expired"
        service.login("alice@example.com", PASSWORD)

    def test_reset_without_forgot_rejected(self, service: IdentityService) -> None:
        register_alice(service)
        with pytest.raises(InvalidOTP):
            service.reset_password("alice@example.com", "123456", "brand-new-pw")

    def test_reset_code_single_use(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")
        code = reset_code(repository)
        service.reset_password("alice@example.com", code, "brand-new-pw")

        with pytest.raises(InvalidOTP):
            service.reset_password("alice@example.com", code, "another-pw")

    def test_reset_keeps_verification_code(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        pending = verification_code(repository)
        service.forgot_password("alice@example.com")
        service.reset_password("alice@example.com", reset_code(repository), "brand-new-pw")

        assert verification_code(repository) == pending

    def test_forgot_password_unknown_email(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.forgot_password("nobody@example.com")

    def test_reset_password_unknown_email(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.reset_password("nobody@example.com", "123456", "brand-new-pw")

    def test_forgot_password_delivers_reset_code(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        dispatcher: OTPDispatcher,
        email_sender: Mock,
    ) -> None:
        register_alice(service)
        service.forgot_password("alice@example.com")
        dispatcher.close()

        assert email_sender.send_otp.call_args_list[-1] == call(
            "alice@example.com", reset_code(repository), OTPPurpose.PASSWORD_RESET
        )


class TestChangePassword:
    """Tests for authenticated password change."""

    def test_change_password(self, service: IdentityService) -> None:
        view = register_alice(service)

        service.change_password(view.id, PASSWORD, "brand-new-pw")

        service.login("alice@example.com", "brand-new-pw")

    def test_wrong_current_password(self, service: IdentityService) -> None:
        view = register_alice(service)

        with pytest.raises(IncorrectCurrentPassword):
            service.change_password(view.id, "not-the-password", "brand-new-pw")

        service.login("alice@example.com", PASSWORD)

    def test_new_password_validated(self, service: IdentityService) -> None:
        view = register_alice(service)
        with pytest.raises(ValidationError):
            service.change_password(view.id, PASSWORD, "short")

    def test_unknown_account(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.change_password("missing", PASSWORD, "brand-new-pw")

    def test_password_rehashed_on_change(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        view = register_alice(service)
        before = repository.find_by_id(view.id).password_hash

        service.change_password(view.id, PASSWORD, PASSWORD)

        assert repository.find_by_id(view.id).password_hash != before


class TestAuthenticate:
    """Tests for resolving session tokens."""

    def test_token_resolves_account(self, service: IdentityService) -> None:
        view = register_alice(service)
        token = service.login("alice@example.com", PASSWORD).session.token
        assert service.authenticate(token).id == view.id

    def test_deactivated_after_issue(self, service: IdentityService) -> None:
        view = register_alice(service)
        token = service.login("alice@example.com", PASSWORD).session.token
        service.deactivate(view.id)

        with pytest.raises(AccountDeactivated):
            service.authenticate(token)

    def test_token_for_missing_account(self, service: IdentityService, token_issuer) -> None:
        token = token_issuer.issue("missing").token
        with pytest.raises(InvalidCredentials):
            service.authenticate(token)

    def test_garbage_token(self, service: IdentityService) -> None:
        with pytest.raises(InvalidSignature):
            service.authenticate("not-a-token")

    def test_get_account(self, service: IdentityService) -> None:
        view = register_alice(service)
        assert service.get_account(view.id) == view

    def test_get_missing_account(self, service: IdentityService) -> None:
        with pytest.raises(NotFoundError):
            service.get_account("missing")


class TestOptimisticRetry:
    """Tests for the compare-and-swap retry loop."""

    def test_retries_after_stale_save(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)
        real_save = repository.save
        calls = []

        def flaky_save(account):
            calls.append(account.version)
            if len(calls) == 1:
                raise StaleAccount(account.id, account.version)
            return real_save(account)

        repository.save = flaky_save

        service.forgot_password("alice@example.com")

        assert len(calls) == 2
        assert repository.find_by_email("alice@example.com").reset_otp is not None

    def test_gives_up_after_max_attempts(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        register_alice(service)

        def always_stale(account):
            raise StaleAccount(account.id, account.version)

        repository.save = always_stale

        with pytest.raises(ConcurrentUpdate):
            service.forgot_password("alice@example.com")

    def test_guards_rechecked_on_retry(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        """A resend that loses the race to a verify sees the verified state on replay."""
        register_alice(service)
        code = verification_code(repository)
        real_save = repository.save
        raced = []

        def save_after_concurrent_verify(account):
            if not raced:
                raced.append(True)
                service.verify_account("alice@example.com", code)
            return real_save(account)

        repository.save = save_after_concurrent_verify

        with pytest.raises(AlreadyVerified):
            service.resend_verification("alice@example.com")

    def test_login_rejected_when_password_replaced_during_retry(
        self,
        service: IdentityService,
        repository: InMemoryAccountRepository,
        hasher: PasswordHasher,
    ) -> None:
        """A login racing a password reset must not mint a token for the old password."""
        register_alice(service)
        real_save = repository.save
        raced = []

        def save_after_concurrent_reset(account):
            if not raced:
                raced.append(True)
                current = repository.find_by_id(account.id)
                current.password_hash = hasher.hash("brand-new-pw")
                real_save(current)
                raise StaleAccount(account.id, account.version)
            return real_save(account)

        repository.save = save_after_concurrent_reset

        with pytest.raises(InvalidCredentials):
            service.login("alice@example.com", PASSWORD)

        stored = repository.find_by_email("alice@example.com")
        assert stored.last_login_at is None
        assert hasher.verify("brand-new-pw", stored.password_hash)

    def test_login_survives_unrelated_concurrent_update(
        self, service: IdentityService, repository: InMemoryAccountRepository
    ) -> None:
        """A retry caused by a write that leaves the password alone still logs in."""
        register_alice(service)
        real_save = repository.save
        raced = []

        def save_after_concurrent_forgot(account):
            if not raced:
                raced.append(True)
                service.forgot_password("alice@example.com")
            return real_save(account)

        repository.save = save_after_concurrent_forgot

        result = service.login("alice@example.com", PASSWORD)

        assert result.session.token
        assert repository.find_by_email("alice@example.com").last_login_at is not None
