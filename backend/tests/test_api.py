import time
import unittest
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import FakeIdentityProvider, InMemoryStore

from app.dtos.github import CandidateRepository, WebhookRegistration
from app.main import configure_app
from app.repositories.user_profile import UserProfileRepository
from app.services.analysis_client import AnalysisClient
from app.services.identity.base import IdentityProviderError
from app.services.live_view import LiveViewCache
from app.services.onboarding_service import OnboardingRegistry
from app.services.profile_service import ProfileService
from app.services.session import SessionContext
from app.store.exceptions import (
    StoreConflictError,
    StorePermissionError,
    StoreUnavailableError,
)

UID = "gh-1"


class StubSource:
    def __init__(self):
        self.hooks = []

    async def list_repositories_for_user(self, identity):
        return [
            CandidateRepository(
                external_id="11", name="alpha", full_name="octo/alpha", owner_login="octo"
            ),
            CandidateRepository(
                external_id="12", name="beta", full_name="octo/beta", owner_login="octo"
            ),
        ]

    async def register_webhook(self, full_name):
        self.hooks.append(full_name)
        return WebhookRegistration(webhook_id="77", webhook_secret="s3cret")


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.provider = FakeIdentityProvider()
        self.session = SessionContext(
            self.provider, ProfileService(UserProfileRepository(self.store))
        )
        self.session.start()

        app = configure_app(FastAPI())
        app.state.store = self.store
        app.state.live_views = LiveViewCache(self.store)
        app.state.identity_provider = self.provider
        app.state.session = self.session
        app.state.analysis_client = AnalysisClient(None)
        app.state.onboarding = OnboardingRegistry()

        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.addCleanup(self.session.close)

    def sign_in(self):
        response = self.client.post("/api/auth/sign-in")
        self.assertEqual(response.status_code, 200)
        return response.json()

    def add_repo(self, doc_id, user_id=UID, **fields):
        self.store.put(
            "repositories",
            doc_id,
            {
                "user_id": user_id,
                "external_repo_id": doc_id,
                "full_name": f"octo/{doc_id}",
                "name": doc_id,
                "owner_login": "octo",
                "is_active": True,
                "webhook_secret": "s3cret",
                "created_at": self.store.now(),
                **fields,
            },
        )


class TestHealthAndSession(ApiTestCase):
    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.json()["status"], "healthy")
        self.assertIn("X-Correlation-ID", response.headers)

    def test_session_lifecycle(self):
        body = self.client.get("/api/auth/session").json()
        self.assertFalse(body["signed_in"])

        body = self.sign_in()
        self.assertTrue(body["signed_in"])
        self.assertEqual(body["identity"]["uid"], UID)
        self.assertIn(UID, self.store.collections["users"])

        body = self.client.post("/api/auth/sign-out").json()
        self.assertFalse(body["signed_in"])

    def test_sign_in_failure_returns_message(self):
        self.provider.next_error = IdentityProviderError("popup-blocked")
        response = self.client.post("/api/auth/sign-in")

        self.assertEqual(response.status_code, 400)
        self.assertIn("blocked", response.json()["detail"])
        session = self.client.get("/api/auth/session").json()
        self.assertEqual(session["error"], response.json()["detail"])

    def test_protected_routes_require_sign_in(self):
        for path in ("/api/repos", "/api/jobs", "/api/dashboard/summary", "/api/sse/repositories"):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 401)


class TestRepositoriesAndJobs(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()
        self.add_repo("r1", stats={"docs_count": 4, "files_analyzed": 10, "coverage": 50.0})
        self.add_repo("r2", language="Python")
        self.add_repo("other", user_id="someone-else")

    def test_list_only_own_active_repositories(self):
        body = self.client.get("/api/repos").json()
        self.assertEqual([r["id"] for r in body], ["r2", "r1"])
        self.assertNotIn("webhook_secret", body[0])

    def test_other_users_repository_is_not_found(self):
        self.assertEqual(self.client.get("/api/repos/other").status_code, 404)
        self.assertEqual(self.client.delete("/api/repos/other").status_code, 404)

    def test_soft_delete(self):
        self.assertEqual(self.client.delete("/api/repos/r1").status_code, 204)
        self.assertEqual(self.client.delete("/api/repos/r1").status_code, 204)
        self.assertEqual(self.client.get("/api/repos/r1").status_code, 404)
        self.assertFalse(self.store.collections["repositories"]["r1"]["is_active"])
        self.assertEqual([r["id"] for r in self.client.get("/api/repos").json()], ["r2"])

    def test_store_errors_map_to_http(self):
        self.store.fail("query", StorePermissionError("rules"))
        response = self.client.get("/api/repos")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FORBIDDEN")

        self.store.fail("query", StoreUnavailableError("offline"))
        self.assertEqual(self.client.get("/api/repos").status_code, 503)

        self.store.fail("query", StoreConflictError("duplicate key"))
        response = self.client.get("/api/repos")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "CONFLICT")

    def test_job_feed_and_result(self):
        for i, repo_id in enumerate(["r1", "r2", "other"]):
            self.store.put(
                "jobs",
                f"j{i}",
                {
                    "job_type": "push-analysis",
                    "status": "queued",
                    "repo_id": repo_id,
                    "repo_full_name": f"octo/{repo_id}",
                    "created_at": self.store.now(),
                },
            )
        self.store.put(
            "job_results",
            "res0",
            {"job_id": "j0", "repo_id": "r1", "status": "completed", "documentation": {}},
        )

        body = self.client.get("/api/jobs").json()
        self.assertEqual([j["id"] for j in body], ["j1", "j0"])

        body = self.client.get("/api/jobs", params={"repo_id": "r1"}).json()
        self.assertEqual([j["id"] for j in body], ["j0"])
        self.assertEqual(
            self.client.get("/api/jobs", params={"repo_id": "other"}).status_code, 404
        )

        self.assertEqual(self.client.get("/api/jobs/j0/result").json()["status"], "completed")
        self.assertEqual(self.client.get("/api/jobs/j1/result").status_code, 404)

    def test_dashboard_summary(self):
        body = self.client.get("/api/dashboard/summary").json()
        self.assertEqual(body["total_repos"], 2)
        self.assertEqual(body["total_docs"], 4)
        self.assertEqual(body["files_analyzed"], 10)
        self.assertEqual(body["average_coverage"], 50.0)
        self.assertEqual(body["languages"], {"Python": 1})
        self.assertEqual(body["analysis_metrics"]["current"]["jobs"]["total"], 0)


class TestOnboardingApi(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()
        self.source = StubSource()
        patcher = patch("app.api.onboarding.GithubClient")
        self.github = patcher.start()
        self.addCleanup(patcher.stop)
        self.github.from_settings.return_value = self.source

    def start(self):
        response = self.client.post("/api/onboarding")
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(len(body["state"]["candidates"]), 2)
        return body["workflow_id"]

    def wait_for_step(self, workflow_id, step):
        for _ in range(100):
            body = self.client.get(f"/api/onboarding/{workflow_id}").json()
            if body["step"] == step:
                return body
            time.sleep(0.02)
        self.fail(f"workflow never reached {step}")

    def test_connect_flow(self):
        workflow_id = self.start()
        toggled = self.client.post(
            f"/api/onboarding/{workflow_id}/toggle", json={"external_id": "12"}
        ).json()
        self.assertEqual(toggled["selected"], ["12"])

        response = self.client.post(f"/api/onboarding/{workflow_id}/confirm")
        self.assertEqual(response.status_code, 202)

        body = self.wait_for_step(workflow_id, "complete")
        self.assertEqual(body["connected_count"], 1)
        self.assertEqual(self.source.hooks, ["octo/beta"])

        repos = self.client.get("/api/repos").json()
        self.assertEqual([r["full_name"] for r in repos], ["octo/beta"])

        self.assertEqual(self.client.delete(f"/api/onboarding/{workflow_id}").status_code, 204)
        self.assertEqual(self.client.get(f"/api/onboarding/{workflow_id}").status_code, 404)

    def test_filter_query(self):
        workflow_id = self.start()
        body = self.client.get(f"/api/onboarding/{workflow_id}", params={"q": "alp"}).json()
        self.assertEqual([c["name"] for c in body["candidates"]], ["alpha"])

    def test_invalid_transitions(self):
        workflow_id = self.start()
        self.assertEqual(
            self.client.post(f"/api/onboarding/{workflow_id}/confirm").status_code, 409
        )

        self.assertEqual(self.client.post(f"/api/onboarding/{workflow_id}/cancel").status_code, 200)
        response = self.client.post(
            f"/api/onboarding/{workflow_id}/toggle", json={"external_id": "11"}
        )
        self.assertEqual(response.status_code, 410)

    def test_unknown_workflow(self):
        self.assertEqual(self.client.get("/api/onboarding/nope").status_code, 404)
        self.assertEqual(self.client.get("/api/sse/onboarding/nope").status_code, 404)


if __name__ == "__main__":
    unittest.main()
