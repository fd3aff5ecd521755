import unittest
from unittest import mock

from mediscan.auth import (
    EMAIL_NOT_CONFIRMED_COPY,
    INVALID_CREDENTIALS_COPY,
    PASSWORD_TOO_SHORT,
    PASSWORDS_DO_NOT_MATCH,
    TERMS_NOT_ACCEPTED,
    AuthService,
    SignUpForm,
)
from mediscan.backend import BackendClient
from mediscan.data_access import DataService
from mediscan.db import InMemoryDbClient
from mediscan.errors import AuthApiError
from mediscan.identity import IdentityProvider
from mediscan.storage import InMemoryStorageClient
from mediscan.types import ScanStatus


def make_form(**overrides) -> SignUpForm:
    values = dict(
        first_name="Jamie",
        last_name="Doe",
        email="Jamie@Example.com",
        password="secret123",
        confirm_password="secret123",
        agree_to_terms=True,
    )
    values.update(overrides)
    return SignUpForm(**values)


class AuthServiceTests(unittest.TestCase):
    def make_service(self, require_confirmation: bool = True) -> AuthService:
        self.db = InMemoryDbClient()
        self.identity = IdentityProvider(
            self.db,
            secret_key="test-secret",
            require_email_confirmation=require_confirmation,
        )
        backend = BackendClient(
            auth=self.identity, db=self.db, storage=InMemoryStorageClient()
        )
        self.data = DataService(backend, profile_retry_delay=0)
        return AuthService(backend, self.data)

    def test_invalid_form_never_reaches_backend(self):
        backend = mock.MagicMock()
        service = AuthService(backend, mock.MagicMock())
        cases = [
            (make_form(confirm_password="other123"), PASSWORDS_DO_NOT_MATCH),
            (make_form(agree_to_terms=False), TERMS_NOT_ACCEPTED),
            (make_form(password="abc", confirm_password="abc"), PASSWORD_TOO_SHORT),
        ]
        for form, expected in cases:
            result = service.sign_up(form)
            self.assertFalse(result.success)
            self.assertEqual(result.error, expected)
        backend.auth.sign_up.assert_not_called()

    def test_signup_requires_confirmation_before_signin(self):
        service = self.make_service()
        result = service.sign_up(make_form())
        self.assertTrue(result.success)
        self.assertTrue(result.needs_confirmation)
        self.assertIsNone(result.session)

        profile = self.db.get_profile(self.db.get_account_by_email("jamie@example.com").id)
        self.assertEqual(profile.full_name, "Jamie Doe")

        denied = service.sign_in("jamie@example.com", "secret123")
        self.assertFalse(denied.success)
        self.assertEqual(denied.error, EMAIL_NOT_CONFIRMED_COPY)

        token = self.identity.create_confirmation_token("jamie@example.com")
        confirmed = service.confirm_email(token)
        self.assertTrue(confirmed.success)
        self.assertEqual(confirmed.user.name, "Jamie Doe")

        signed_in = service.sign_in("JAMIE@example.com", "secret123")
        self.assertTrue(signed_in.success)
        self.assertEqual(signed_in.user.email, "jamie@example.com")
        self.assertIsNotNone(self.db.get_account(signed_in.user.id).last_sign_in_at)

    def test_signup_without_confirmation_returns_session(self):
        service = self.make_service(require_confirmation=False)
        result = service.sign_up(make_form())
        self.assertTrue(result.success)
        self.assertFalse(result.needs_confirmation)
        user = service.get_current_user(result.session.access_token)
        self.assertEqual(user.name, "Jamie Doe")

    def test_duplicate_signup(self):
        service = self.make_service()
        service.sign_up(make_form())
        result = service.sign_up(make_form(email="jamie@example.com"))
        self.assertFalse(result.success)
        self.assertEqual(result.error, "User already registered")

    def test_failed_profile_write_leaves_no_account(self):
        service = self.make_service(require_confirmation=False)
        with mock.patch.object(
            self.db, "create_profile", side_effect=ConnectionError("db down")
        ):
            failed = service.sign_up(make_form())
        self.assertFalse(failed.success)
        self.assertEqual(failed.error, "Failed to create account")
        self.assertEqual(self.db.accounts, {})
        self.assertEqual(self.db.profiles, {})

        retried = service.sign_up(make_form())
        self.assertTrue(retried.success)
        self.assertEqual(len(self.db.accounts), 1)
        self.assertIn(retried.user.id, self.db.profiles)

    def test_expired_revocations_are_pruned(self):
        service = self.make_service(require_confirmation=False)
        token = service.sign_up(make_form()).session.access_token
        self.identity._revoked["stale-jti"] = 1.0
        service.sign_out(token)
        self.assertNotIn("stale-jti", self.identity._revoked)
        self.assertEqual(len(self.identity._revoked), 1)
        self.assertIsNone(service.get_current_user(token))

    def test_wrong_password(self):
        service = self.make_service(require_confirmation=False)
        service.sign_up(make_form())
        result = service.sign_in("jamie@example.com", "wrong-password")
        self.assertFalse(result.success)
        self.assertEqual(result.error, INVALID_CREDENTIALS_COPY)

    def test_bad_confirmation_token(self):
        service = self.make_service()
        result = service.confirm_email("not-a-token")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invalid or expired token")

    def test_access_token_cannot_confirm_email(self):
        service = self.make_service(require_confirmation=False)
        session = service.sign_up(make_form()).session
        with self.assertRaises(AuthApiError):
            self.identity.confirm_email(session.access_token)

    def test_resend_is_quiet_for_unknown_address(self):
        service = self.make_service()
        self.assertTrue(service.resend_confirmation("nobody@example.com").success)

    def test_sign_out_revokes_token(self):
        service = self.make_service(require_confirmation=False)
        token = service.sign_up(make_form()).session.access_token
        self.assertIsNotNone(service.get_current_user(token))
        service.sign_out(token)
        self.assertIsNone(service.get_current_user(token))
        # A second sign-out is harmless.
        service.sign_out(token)

    def test_current_user_without_token(self):
        service = self.make_service()
        self.assertIsNone(service.get_current_user(None))
        self.assertIsNone(service.get_current_user("garbage"))
        self.assertIsNone(service.get_user_stats(None))

    def test_export_strips_image_urls(self):
        service = self.make_service(require_confirmation=False)
        result = service.sign_up(make_form())
        for index in range(3):
            self.data.create_scan(
                {
                    "user_id": result.user.id,
                    "name": f"Scan {index}",
                    "type": "Chest X-Ray",
                    "file_name": f"scan-{index}.png",
                    "file_size": 100,
                    "status": ScanStatus.PENDING,
                    "image_url": "https://example.test/storage/scans/x.png",
                    "thumbnail_url": "https://example.test/storage/scans/x-thumb.jpg",
                }
            )
        exported = service.export_user_data(result.session.access_token)
        self.assertEqual(exported["user"]["email"], "jamie@example.com")
        self.assertEqual(len(exported["scans"]), 3)
        for scan in exported["scans"]:
            self.assertNotIn("image_url", scan)
            self.assertNotIn("thumbnail_url", scan)
            self.assertEqual(scan["status"], "pending")

    def test_stats_for_current_user(self):
        service = self.make_service(require_confirmation=False)
        token = service.sign_up(make_form()).session.access_token
        self.assertEqual(service.get_user_stats(token).total_scans, 0)


if __name__ == "__main__":
    unittest.main()
