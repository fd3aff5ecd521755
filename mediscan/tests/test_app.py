import io
import time
import unittest

from fastapi.testclient import TestClient
from PIL import Image

from mediscan.app import create_app
from mediscan.config import Settings
from mediscan.upload import MAX_FILE_SIZE


def png_bytes() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (320, 240), color=(0, 90, 160)).save(out, format="PNG")
    return out.getvalue()


def make_settings(**overrides) -> Settings:
    values = dict(
        use_in_memory_backends=True,
        require_email_confirmation=False,
        analysis_min_delay_seconds=0.0,
        analysis_max_delay_seconds=0.0,
        progress_tick_seconds=0.01,
        profile_retry_delay_seconds=0.0,
    )
    values.update(overrides)
    return Settings(**values)


class MediScanApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app(make_settings())
        self.client = TestClient(self.app)

    def sign_up(self, email="jamie@example.com", client=None) -> dict:
        response = (client or self.client).post(
            "/api/auth/signup",
            json={
                "first_name": "Jamie",
                "last_name": "Doe",
                "email": email,
                "password": "secret123",
                "confirm_password": "secret123",
                "agree_to_terms": True,
            },
        )
        self.assertEqual(response.status_code, 201)
        token = response.json()["session"]["access_token"]
        return {"Authorization": f"Bearer {token}"}

    def upload(self, headers, data=None, filename="chest.png", content_type="image/png", client=None, **form):
        form.setdefault("scan_type", "chest-xray")
        return (client or self.client).post(
            "/api/scans",
            headers=headers,
            files={"file": (filename, data if data is not None else png_bytes(), content_type)},
            data={k: v for k, v in form.items() if v is not None},
        )

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_signup_and_me(self):
        headers = self.sign_up()
        response = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Jamie Doe")
        self.assertEqual(response.json()["email"], "jamie@example.com")

    def test_signup_password_mismatch(self):
        response = self.client.post(
            "/api/auth/signup",
            json={
                "first_name": "Jamie",
                "last_name": "Doe",
                "email": "jamie@example.com",
                "password": "secret123",
                "confirm_password": "secret124",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Passwords do not match.")

    def test_signin_with_confirmation_pending(self):
        app = create_app(make_settings(require_email_confirmation=True))
        client = TestClient(app)
        response = client.post(
            "/api/auth/signup",
            json={
                "first_name": "Jamie",
                "last_name": "Doe",
                "email": "jamie@example.com",
                "password": "secret123",
                "confirm_password": "secret123",
            },
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["needs_confirmation"])

        denied = client.post(
            "/api/auth/signin",
            json={"email": "jamie@example.com", "password": "secret123"},
        )
        self.assertEqual(denied.status_code, 401)
        self.assertIn("confirmation link", denied.json()["detail"])

        token = app.state.backend.auth.create_confirmation_token("jamie@example.com")
        confirmed = client.get("/api/auth/confirm", params={"token": token})
        self.assertEqual(confirmed.status_code, 200)

        signed_in = client.post(
            "/api/auth/signin",
            json={"email": "jamie@example.com", "password": "secret123"},
        )
        self.assertEqual(signed_in.status_code, 200)
        self.assertIn("access_token", signed_in.json()["session"])

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/scans").status_code, 401)
        self.assertEqual(self.client.get("/api/stats").status_code, 401)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_sign_out_invalidates_token(self):
        headers = self.sign_up()
        self.assertEqual(self.client.post("/api/auth/signout", headers=headers).status_code, 204)
        self.assertEqual(self.client.get("/api/auth/me", headers=headers).status_code, 401)

    def test_scan_types(self):
        response = self.client.get("/api/scan-types")
        self.assertEqual(response.status_code, 200)
        scan_types = response.json()["scan_types"]
        self.assertEqual(len(scan_types), 6)
        self.assertEqual(scan_types["brain-mri"], "Brain MRI")

    def test_profile_update(self):
        headers = self.sign_up()
        response = self.client.patch(
            "/api/profile", headers=headers, json={"allergies": ["penicillin"]}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["allergies"], ["penicillin"])
        self.assertEqual(
            self.client.get("/api/profile", headers=headers).json()["full_name"], "Jamie Doe"
        )

    def test_rejects_invalid_file_type(self):
        headers = self.sign_up()
        response = self.upload(headers, data=b"%PDF-1.4", filename="scan.pdf", content_type="application/pdf")
        self.assertEqual(response.status_code, 400)
        self.assertIn("valid medical image", response.json()["detail"])
        self.assertEqual(self.client.get("/api/scans", headers=headers).json()["total"], 0)

    def test_rejects_oversized_file(self):
        headers = self.sign_up()
        data = b"\x89PNG\r\n\x1a\n" + b"\0" * (60 * 1000 * 1000)
        self.assertGreater(len(data), MAX_FILE_SIZE)
        response = self.upload(headers, data=data, filename="huge.png")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please upload a file smaller than 50MB.")
        self.assertEqual(self.client.get("/api/scans", headers=headers).json()["total"], 0)

    def test_missing_scan_type(self):
        headers = self.sign_up()
        response = self.upload(headers, scan_type=None)
        self.assertEqual(response.status_code, 422)
        self.assertEqual(self.client.get("/api/scans", headers=headers).json()["total"], 0)

    def test_upload_analyze_report_and_delete(self):
        with TestClient(self.app) as client:
            headers = self.sign_up(client=client)
            response = self.upload(headers, client=client)
            self.assertEqual(response.status_code, 202)
            scan = response.json()
            self.assertEqual(scan["status"], "analyzing")
            self.assertEqual(scan["name"], "Chest X-Ray - chest.png")
            self.assertIsNone(scan["diagnosis"])

            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                current = client.get(f"/api/scans/{scan['id']}", headers=headers).json()
                if current["status"] == "analyzed":
                    break
                time.sleep(0.02)
            self.assertEqual(current["status"], "analyzed")
            self.assertTrue(current["diagnosis"])
            self.assertTrue(current["findings"])

            progress = client.get(f"/api/scans/{scan['id']}/progress", headers=headers)
            self.assertEqual(progress.json()["progress"], 100.0)

            report = client.get(f"/api/scans/{scan['id']}/report", headers=headers)
            self.assertEqual(report.status_code, 200)
            self.assertIn("attachment", report.headers["content-disposition"])
            self.assertIn(current["diagnosis"], report.text)

            stats = client.get("/api/stats", headers=headers).json()
            self.assertEqual(stats["total_scans"], 1)
            self.assertEqual(stats["analyzed_scans"], 1)
            self.assertEqual(stats["average_confidence"], round(current["confidence"], 1))

            listed = client.get(
                "/api/scans", headers=headers, params={"status": "analyzed", "search": "chest"}
            ).json()
            self.assertEqual(listed["total"], 1)
            pending = client.get("/api/scans", headers=headers, params={"status": "pending"}).json()
            self.assertEqual(pending["total"], 0)

            deleted = client.delete(f"/api/scans/{scan['id']}", headers=headers)
            self.assertEqual(deleted.status_code, 204)
            self.assertEqual(
                client.get(f"/api/scans/{scan['id']}", headers=headers).status_code, 404
            )

    def test_report_requires_analyzed_scan(self):
        app = create_app(
            make_settings(analysis_min_delay_seconds=30.0, analysis_max_delay_seconds=30.0)
        )
        with TestClient(app) as client:
            headers = self.sign_up(client=client)
            scan = self.upload(headers, client=client).json()
            report = client.get(f"/api/scans/{scan['id']}/report", headers=headers)
            self.assertEqual(report.status_code, 409)

            progress = client.get(f"/api/scans/{scan['id']}/progress", headers=headers).json()
            self.assertEqual(progress["state"], "analyzing")

            deleted = client.delete(f"/api/scans/{scan['id']}", headers=headers)
            self.assertEqual(deleted.status_code, 204)
            deadline = time.monotonic() + 2
            while len(app.state.registry) and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertEqual(len(app.state.registry), 0)
            self.assertEqual(
                client.get(f"/api/scans/{scan['id']}", headers=headers).status_code, 404
            )

    def test_other_users_scans_are_hidden(self):
        with TestClient(self.app) as client:
            owner = self.sign_up(client=client)
            scan = self.upload(owner, client=client).json()
            stranger = self.sign_up(email="sam@example.com", client=client)
            self.assertEqual(
                client.get(f"/api/scans/{scan['id']}", headers=stranger).status_code, 404
            )
            self.assertEqual(
                client.delete(f"/api/scans/{scan['id']}", headers=stranger).status_code, 404
            )
            self.assertEqual(client.get("/api/scans", headers=stranger).json()["total"], 0)

    def test_export_has_no_image_urls(self):
        with TestClient(self.app) as client:
            headers = self.sign_up(client=client)
            for _ in range(3):
                self.assertEqual(self.upload(headers, client=client).status_code, 202)
            response = client.get("/api/auth/export", headers=headers)
            self.assertEqual(response.status_code, 200)
            self.assertIn("attachment", response.headers["content-disposition"])
            payload = response.json()
            self.assertEqual(payload["user"]["email"], "jamie@example.com")
            self.assertEqual(len(payload["scans"]), 3)
            for scan in payload["scans"]:
                self.assertNotIn("image_url", scan)
                self.assertNotIn("thumbnail_url", scan)


if __name__ == "__main__":
    unittest.main()
