import unittest
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from app.api.errors import install_exception_handlers
from app.api.router import api_router
from app.core.config import settings
from app.core.database import get_session
from app.models.content import Novel
from app.models.engagement import Notification
from app.services import notification_service


class NotificationServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        SQLModel.metadata.create_all(self.engine)

    def tearDown(self) -> None:
        SQLModel.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_create_skips_anonymous_recipient(self) -> None:
        with Session(self.engine) as db:
            created = notification_service.create_notification(
                db,
                user_id=None,
                type="comment_flagged",
                title="t",
                message="m",
            )
            self.assertIsNone(created)
            self.assertEqual(db.exec(select(Notification)).all(), [])

    def test_insert_failure_is_swallowed_and_earlier_writes_survive(self) -> None:
        with Session(self.engine) as db:
            novel = Novel(user_id="author", title="Kept")
            db.add(novel)
            db.commit()

            with patch.object(db, "commit", side_effect=RuntimeError("db down")), self.assertLogs(
                "app.services.notification_service", level="ERROR"
            ):
                created = notification_service.create_notification(
                    db,
                    user_id="author",
                    type="novel_approved",
                    title="Novel approved",
                    message="done",
                )
            self.assertIsNone(created)

        with Session(self.engine) as db:
            self.assertEqual(len(db.exec(select(Novel)).all()), 1)
            self.assertEqual(db.exec(select(Notification)).all(), [])


class NotificationEndpointTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._snapshot = {
            "auth_enabled": settings.auth_enabled,
            "auth_tokens": settings.auth_tokens,
            "auth_token": settings.auth_token,
            "auth_user": settings.auth_user,
            "notification_list_limit": settings.notification_list_limit,
        }
        settings.auth_enabled = True
        settings.auth_tokens = "alice:alice-token,bob:bob-token"
        settings.auth_token = ""
        settings.auth_user = ""
        settings.notification_list_limit = 20

        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        SQLModel.metadata.create_all(self.engine)
        with Session(self.engine) as db:
            for index in range(3):
                notification_service.create_notification(
                    db,
                    user_id="alice",
                    type="comment_approved",
                    title=f"Note {index}",
                    message="Your comment was approved",
                    data={"index": index},
                )
            notification_service.create_notification(
                db,
                user_id="bob",
                type="novel_rejected",
                title="Bob only",
                message="Not for alice",
            )

        app = FastAPI()
        install_exception_handlers(app)
        app.include_router(api_router, prefix=settings.api_prefix)

        def _override_get_session():
            with Session(self.engine) as db:
                yield db

        app.dependency_overrides[get_session] = _override_get_session
        self.app = app
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        self.app.dependency_overrides.clear()
        SQLModel.metadata.drop_all(self.engine)
        self.engine.dispose()

        for key, value in self._snapshot.items():
            setattr(settings, key, value)

    @staticmethod
    def _auth_header(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def test_list_is_scoped_newest_first_and_limited(self) -> None:
        resp = self.client.get("/api/notifications", headers=self._auth_header("alice-token"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([item["title"] for item in resp.json()], ["Note 2", "Note 1", "Note 0"])

        limited = self.client.get("/api/notifications?limit=1", headers=self._auth_header("alice-token"))
        self.assertEqual(len(limited.json()), 1)

    def test_mark_read_and_unread_count(self) -> None:
        headers = self._auth_header("alice-token")
        self.assertEqual(self.client.get("/api/notifications/unread-count", headers=headers).json()["unread_count"], 3)

        first_id = self.client.get("/api/notifications", headers=headers).json()[0]["id"]
        marked = self.client.post(f"/api/notifications/{first_id}/read", headers=headers)
        self.assertEqual(marked.status_code, 200)
        self.assertTrue(marked.json()["is_read"])
        self.assertEqual(self.client.get("/api/notifications/unread-count", headers=headers).json()["unread_count"], 2)

        all_read = self.client.post("/api/notifications/read-all", headers=headers)
        self.assertEqual(all_read.json()["updated"], 2)
        self.assertEqual(self.client.get("/api/notifications/unread-count", headers=headers).json()["unread_count"], 0)

        bob_count = self.client.get("/api/notifications/unread-count", headers=self._auth_header("bob-token"))
        self.assertEqual(bob_count.json()["unread_count"], 1)

    def test_cannot_mark_another_users_notification(self) -> None:
        bob_id = self.client.get("/api/notifications", headers=self._auth_header("bob-token")).json()[0]["id"]
        resp = self.client.post(f"/api/notifications/{bob_id}/read", headers=self._auth_header("alice-token"))
        self.assertEqual(resp.status_code, 404)

    def test_requires_authentication(self) -> None:
        self.assertEqual(self.client.get("/api/notifications").status_code, 401)


if __name__ == "__main__":
    unittest.main()
