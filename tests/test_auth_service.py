"""Account flows in app.services.auth against an in-memory user store."""

import asyncio
import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from app.core.passwords import get_credential_store
from app.core.security import TokenPurpose, issue_token, verify_token
from app.models import User
from app.services.auth import (
    BadCredentials,
    DuplicateKey,
    EmailTaken,
    ExpiredOrInvalid,
    InvalidIdentityToken,
    NotFound,
    StorageError,
    UnverifiedEmail,
    UserNotFound,
    complete_signup,
    forgot_password,
    google_login,
    load_user,
    pre_signup,
    reset_password,
    sign_in,
)
from app.services.google_identity import IdentityTokenError
from tests.support import (
    CLIENT_URL,
    google_identity,
    make_db,
    make_mailer,
    make_settings,
    make_verifier,
    sent_token,
)

ACTIVATE = "/auth/account/activate/"
RESET = "/auth/password/reset/"


class AuthServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_db()
        self.settings = make_settings()
        self.mailer = make_mailer()

    def tearDown(self) -> None:
        self.db.close()

    def register(self, name: str = "A", email: str = "a@x.com", password: str = "p1pass") -> User:
        """Run pre-signup and activation; return the persisted user."""
        asyncio.run(pre_signup(self.db, name, email, password, self.settings, self.mailer))
        complete_signup(self.db, sent_token(self.mailer, ACTIVATE), self.settings)
        return self.db.query(User).filter(User.email == email.lower()).one()


class TestPreSignup(AuthServiceTestCase):
    def test_sends_activation_email_without_persisting(self) -> None:
        message = asyncio.run(
            pre_signup(self.db, "A", "a@x.com", "p1pass", self.settings, self.mailer)
        )
        self.assertIn("a@x.com", message)
        self.mailer.send.assert_called_once()
        email = self.mailer.send.call_args[0][0]
        self.assertEqual(email.to, ["a@x.com"])
        self.assertEqual(email.subject, "Account activation link")
        self.assertIn(f"{CLIENT_URL}{ACTIVATE}", email.html)
        self.assertEqual(self.db.query(User).count(), 0)

    def test_token_carries_signup_details(self) -> None:
        asyncio.run(pre_signup(self.db, "A", "a@x.com", "p1pass", self.settings, self.mailer))
        claims = verify_token(
            TokenPurpose.ACCOUNT_ACTIVATION, sent_token(self.mailer, ACTIVATE), self.settings
        )
        self.assertEqual(claims, {"name": "A", "email": "a@x.com", "password": "p1pass"})

    def test_email_taken_is_case_insensitive(self) -> None:
        self.register()
        self.mailer.send.reset_mock()
        with self.assertRaises(EmailTaken) as ctx:
            asyncio.run(pre_signup(self.db, "B", "A@X.com", "p1pass", self.settings, self.mailer))
        self.assertEqual(ctx.exception.message, "Email is taken")
        self.mailer.send.assert_not_called()


class TestCompleteSignup(AuthServiceTestCase):
    def test_creates_user_with_generated_username_and_profile(self) -> None:
        asyncio.run(pre_signup(self.db, "A", "a@x.com", "p1pass", self.settings, self.mailer))
        message = complete_signup(self.db, sent_token(self.mailer, ACTIVATE), self.settings)
        self.assertEqual(message, "Signup success! Please signin")
        user = self.db.query(User).one()
        self.assertEqual(user.name, "A")
        self.assertEqual(user.email, "a@x.com")
        self.assertTrue(user.username)
        self.assertEqual(user.username, user.username.lower())
        self.assertLessEqual(len(user.username), 32)
        self.assertEqual(user.profile, f"{CLIENT_URL}/profile/{user.username}")
        self.assertEqual(user.role, 0)
        self.assertEqual(user.reset_password_link, "")
        self.assertNotEqual(user.password_hash, "p1pass")
        store = get_credential_store(self.settings)
        self.assertTrue(store.verify_password("p1pass", user.salt, user.password_hash))

    def test_missing_token_returns_retry_message(self) -> None:
        self.assertEqual(complete_signup(self.db, None, self.settings), "Something went wrong. Try again")
        self.assertEqual(complete_signup(self.db, "", self.settings), "Something went wrong. Try again")
        self.assertEqual(self.db.query(User).count(), 0)

    def test_invalid_token_rejected(self) -> None:
        with self.assertRaises(ExpiredOrInvalid) as ctx:
            complete_signup(self.db, "garbage", self.settings)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(self.db.query(User).count(), 0)

    def test_expired_token_rejected(self) -> None:
        issued = datetime.now(UTC) - timedelta(minutes=11)
        token = issue_token(
            TokenPurpose.ACCOUNT_ACTIVATION,
            {"name": "A", "email": "a@x.com", "password": "p1pass"},
            self.settings,
            now=issued,
        )
        with self.assertRaises(ExpiredOrInvalid):
            complete_signup(self.db, token, self.settings)

    def test_concurrent_signups_for_same_email_create_one_user(self) -> None:
        asyncio.run(pre_signup(self.db, "A", "a@x.com", "p1pass", self.settings, self.mailer))
        first = sent_token(self.mailer, ACTIVATE)
        asyncio.run(pre_signup(self.db, "A2", "a@x.com", "p2pass", self.settings, self.mailer))
        second = sent_token(self.mailer, ACTIVATE)

        complete_signup(self.db, first, self.settings)
        with self.assertRaises(DuplicateKey) as ctx:
            complete_signup(self.db, second, self.settings)
        self.assertIn("Email", ctx.exception.message)
        self.assertEqual(self.db.query(User).count(), 1)


class TestSignIn(AuthServiceTestCase):
    def test_success_issues_session_token(self) -> None:
        user = self.register()
        token, signed_in = sign_in(self.db, "a@x.com", "p1pass", self.settings)
        self.assertEqual(signed_in.id, user.id)
        claims = verify_token(TokenPurpose.SESSION, token, self.settings)
        self.assertEqual(claims["sub"], str(user.id))

    def test_wrong_password(self) -> None:
        self.register()
        with self.assertRaises(BadCredentials) as ctx:
            sign_in(self.db, "a@x.com", "wrong-pass", self.settings)
        self.assertEqual(ctx.exception.message, "Email and password do not match")

    def test_unknown_email(self) -> None:
        with self.assertRaises(UserNotFound):
            sign_in(self.db, "nobody@x.com", "p1pass", self.settings)

    def test_email_matched_exactly_not_case_normalized(self) -> None:
        # Pre-signup lowercases for its check but sign-in looks up the email as given.
        self.register()
        with self.assertRaises(UserNotFound):
            sign_in(self.db, "A@X.com", "p1pass", self.settings)


class TestPasswordReset(AuthServiceTestCase):
    def test_forgot_records_token_before_emailing(self) -> None:
        user = self.register()
        self.mailer.send.reset_mock()
        asyncio.run(forgot_password(self.db, "a@x.com", self.settings, self.mailer))
        token = sent_token(self.mailer, RESET)
        self.db.refresh(user)
        self.assertEqual(user.reset_password_link, token)
        email = self.mailer.send.call_args[0][0]
        self.assertEqual(email.subject, "Password reset link")

    def test_forgot_unknown_email(self) -> None:
        with self.assertRaises(UserNotFound) as ctx:
            asyncio.run(forgot_password(self.db, "nobody@x.com", self.settings, self.mailer))
        self.assertEqual(ctx.exception.status_code, 401)
        self.mailer.send.assert_not_called()

    def test_forgot_storage_failure_sends_nothing(self) -> None:
        db = MagicMock()
        user = MagicMock()
        user.id = 1
        db.query.return_value.filter.return_value.first.return_value = user
        db.commit.side_effect = OperationalError("UPDATE users", {}, Exception("down"))
        with self.assertRaises(StorageError):
            asyncio.run(forgot_password(db, "a@x.com", self.settings, self.mailer))
        db.rollback.assert_called_once()
        self.mailer.send.assert_not_called()

    def test_reset_changes_password_and_is_single_use(self) -> None:
        self.register(password="p1pass")
        asyncio.run(forgot_password(self.db, "a@x.com", self.settings, self.mailer))
        token = sent_token(self.mailer, RESET)

        message = reset_password(self.db, token, "p2pass", self.settings)
        self.assertIn("login with your new password", message)

        sign_in(self.db, "a@x.com", "p2pass", self.settings)
        with self.assertRaises(BadCredentials):
            sign_in(self.db, "a@x.com", "p1pass", self.settings)

        user = self.db.query(User).one()
        self.assertEqual(user.reset_password_link, "")
        # Signature is still valid, but the recorded token was cleared.
        verify_token(TokenPurpose.PASSWORD_RESET, token, self.settings)
        with self.assertRaises(NotFound):
            reset_password(self.db, token, "p3pass", self.settings)

    def test_reset_rotates_salt(self) -> None:
        user = self.register()
        old_salt = user.salt
        asyncio.run(forgot_password(self.db, "a@x.com", self.settings, self.mailer))
        reset_password(self.db, sent_token(self.mailer, RESET), "p2pass", self.settings)
        self.db.refresh(user)
        self.assertNotEqual(user.salt, old_salt)

    def test_reset_with_expired_token(self) -> None:
        user = self.register()
        issued = datetime.now(UTC) - timedelta(minutes=11)
        token = issue_token(TokenPurpose.PASSWORD_RESET, {"sub": str(user.id)}, self.settings, now=issued)
        user.reset_password_link = token
        self.db.commit()
        with self.assertRaises(ExpiredOrInvalid) as ctx:
            reset_password(self.db, token, "p2pass", self.settings)
        self.assertEqual(ctx.exception.message, "Expired link. Try again")

    def test_reset_with_valid_but_unrecorded_token(self) -> None:
        user = self.register()
        token = issue_token(TokenPurpose.PASSWORD_RESET, {"sub": str(user.id)}, self.settings)
        with self.assertRaises(NotFound):
            reset_password(self.db, token, "p2pass", self.settings)


class TestGoogleLogin(AuthServiceTestCase):
    def test_unverified_email_rejected_without_creating_user(self) -> None:
        verifier = make_verifier(google_identity(email_verified=False))
        with self.assertRaises(UnverifiedEmail):
            asyncio.run(google_login(self.db, "id-token", self.settings, verifier))
        self.assertEqual(self.db.query(User).count(), 0)

    def test_verifier_failure(self) -> None:
        verifier = make_verifier(error=IdentityTokenError("bad audience"))
        with self.assertRaises(InvalidIdentityToken):
            asyncio.run(google_login(self.db, "id-token", self.settings, verifier))

    def test_audience_is_configured_client_id(self) -> None:
        verifier = make_verifier()
        asyncio.run(google_login(self.db, "id-token", self.settings, verifier))
        verifier.verify.assert_awaited_once_with("id-token", self.settings.GOOGLE_CLIENT_ID)

    def test_existing_account_signed_in(self) -> None:
        user = self.register(email="g@example.com")
        verifier = make_verifier(google_identity(email="g@example.com"))
        token, signed_in = asyncio.run(google_login(self.db, "id-token", self.settings, verifier))
        self.assertEqual(signed_in.id, user.id)
        self.assertEqual(self.db.query(User).count(), 1)
        self.assertEqual(verify_token(TokenPurpose.SESSION, token, self.settings)["sub"], str(user.id))

    def test_new_account_provisioned(self) -> None:
        verifier = make_verifier(google_identity(email="new@example.com", name="New Person"))
        token, user = asyncio.run(google_login(self.db, "id-token", self.settings, verifier))
        self.assertEqual(user.email, "new@example.com")
        self.assertEqual(user.name, "New Person")
        self.assertEqual(user.profile, f"{CLIENT_URL}/profile/{user.username}")
        self.assertTrue(user.password_hash)
        store = get_credential_store(self.settings)
        self.assertTrue(store.verify_password("jti-abc", user.salt, user.password_hash))
        self.assertEqual(verify_token(TokenPurpose.SESSION, token, self.settings)["sub"], str(user.id))

    def test_not_configured(self) -> None:
        settings = make_settings(GOOGLE_CLIENT_ID=None)
        verifier = make_verifier()
        with self.assertRaises(InvalidIdentityToken):
            asyncio.run(google_login(self.db, "id-token", settings, verifier))
        verifier.verify.assert_not_called()


class TestUserLookupFailure(AuthServiceTestCase):
    """A failing read surfaces as StorageError after rolling the session back."""

    def setUp(self) -> None:
        super().setUp()
        self.broken = MagicMock()
        self.broken.query.side_effect = OperationalError("SELECT users", {}, Exception("down"))

    def test_sign_in(self) -> None:
        with self.assertRaises(StorageError) as ctx:
            sign_in(self.broken, "a@x.com", "p1pass", self.settings)
        self.assertEqual(ctx.exception.message, "Something went wrong. Try again")
        self.broken.rollback.assert_called_once()

    def test_pre_signup_sends_nothing(self) -> None:
        with self.assertRaises(StorageError):
            asyncio.run(
                pre_signup(self.broken, "A", "a@x.com", "p1pass", self.settings, self.mailer)
            )
        self.broken.rollback.assert_called_once()
        self.mailer.send.assert_not_called()

    def test_reset_password(self) -> None:
        token = issue_token(TokenPurpose.PASSWORD_RESET, {"sub": "1"}, self.settings)
        with self.assertRaises(StorageError):
            reset_password(self.broken, token, "p2pass", self.settings)
        self.broken.rollback.assert_called_once()

    def test_load_user(self) -> None:
        with self.assertRaises(StorageError):
            load_user(self.broken, 1)
        self.broken.rollback.assert_called_once()


if __name__ == "__main__":
    unittest.main()
