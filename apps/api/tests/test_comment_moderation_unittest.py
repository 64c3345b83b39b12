import unittest
from urllib.parse import parse_qs, urlparse

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from app.api.errors import install_exception_handlers
from app.api.router import api_router
from app.core.config import settings
from app.core.database import get_session
from app.models.content import Chapter, Comment, CommentReaction, CommentReport, Novel
from app.models.engagement import Notification


class CommentModerationTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._snapshot = {
            "auth_enabled": settings.auth_enabled,
            "auth_tokens": settings.auth_tokens,
            "auth_token": settings.auth_token,
            "auth_user": settings.auth_user,
            "auth_admin_users": settings.auth_admin_users,
            "admin_base_path": settings.admin_base_path,
            "comment_report_threshold": settings.comment_report_threshold,
        }
        settings.auth_enabled = True
        settings.auth_tokens = ",".join(
            [
                "author:author-token",
                "reader:reader-token",
                "admin:admin-token",
                *[f"user{index}:user{index}-token" for index in range(1, 6)],
            ]
        )
        settings.auth_token = ""
        settings.auth_user = ""
        settings.auth_admin_users = "admin"
        settings.admin_base_path = "/admin"
        settings.comment_report_threshold = 5

        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        SQLModel.metadata.create_all(self.engine)
        with Session(self.engine) as db:
            novel = Novel(user_id="author", title="The Clockwork Sea", is_public=True, is_published=True)
            db.add(novel)
            db.commit()
            db.refresh(novel)
            self.novel_id = int(novel.id or 0)
            chapter = Chapter(novel_id=self.novel_id, chapter_number=1, title="Low Tide", is_published=True)
            db.add(chapter)
            db.commit()
            db.refresh(chapter)
            self.chapter_id = int(chapter.id or 0)

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

    def _post_comment(self, content: str, *, token: str = "reader-token", parent_comment_id: int | None = None) -> dict:
        payload = {"novel_id": self.novel_id, "content": content}
        if parent_comment_id is not None:
            payload["parent_comment_id"] = parent_comment_id
        resp = self.client.post("/api/comments", json=payload, headers=self._auth_header(token))
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def _load_comment(self, comment_id: int) -> Comment | None:
        with Session(self.engine) as db:
            return db.get(Comment, comment_id)

    def _notifications_for(self, user_id: str) -> list[Notification]:
        with Session(self.engine) as db:
            return list(db.exec(select(Notification).where(Notification.user_id == user_id)).all())

    @staticmethod
    def _redirect_query(location: str) -> tuple[str, dict[str, list[str]]]:
        parsed = urlparse(location)
        return parsed.path, parse_qs(parsed.query)

    def _success_message(self, resp) -> list[str]:
        self.assertEqual(resp.status_code, 303)
        return self._redirect_query(resp.headers["location"])[1].get("success", [])

    def test_list_nests_replies_and_orders_pinned_first(self) -> None:
        first = self._post_comment("first")
        second = self._post_comment("second")
        reply = self._post_comment("a reply", token="author-token", parent_comment_id=first["id"])
        with Session(self.engine) as db:
            row = db.get(Comment, first["id"])
            row.is_pinned = True
            db.add(row)
            db.commit()

        resp = self.client.get(f"/api/comments?novel_id={self.novel_id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual([item["id"] for item in body], [first["id"], second["id"]])
        self.assertEqual([item["id"] for item in body[0]["replies"]], [reply["id"]])
        self.assertEqual(body[0]["comment_type"], "novel")

    def test_list_requires_a_target(self) -> None:
        resp = self.client.get("/api/comments")
        self.assertEqual(resp.status_code, 400)

    def test_author_can_edit_and_soft_delete_only_own_comment(self) -> None:
        comment = self._post_comment("typo hree")

        denied = self.client.patch(
            f"/api/comments/{comment['id']}",
            json={"content": "hijacked"},
            headers=self._auth_header("author-token"),
        )
        self.assertEqual(denied.status_code, 403)

        edited = self.client.patch(
            f"/api/comments/{comment['id']}",
            json={"content": "typo here"},
            headers=self._auth_header("reader-token"),
        )
        self.assertEqual(edited.status_code, 200)
        self.assertTrue(edited.json()["is_edited"])

        deleted = self.client.delete(f"/api/comments/{comment['id']}", headers=self._auth_header("reader-token"))
        self.assertEqual(deleted.status_code, 200)
        self.assertTrue(self._load_comment(comment["id"]).is_deleted)
        self.assertEqual(self.client.get(f"/api/comments?novel_id={self.novel_id}").json(), [])

    def test_duplicate_report_by_same_user_returns_400(self) -> None:
        comment = self._post_comment("questionable")
        payload = {"comment_id": comment["id"], "reason": "spam"}

        first = self.client.post("/api/comments/report", json=payload, headers=self._auth_header("user1-token"))
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["reported_count"], 1)

        second = self.client.post("/api/comments/report", json=payload, headers=self._auth_header("user1-token"))
        self.assertEqual(second.status_code, 400)
        self.assertEqual(self._load_comment(comment["id"]).reported_count, 1)

    def test_reported_count_reaching_threshold_hides_comment(self) -> None:
        comment = self._post_comment("offensive")
        for index in range(1, 5):
            resp = self.client.post(
                "/api/comments/report",
                json={"comment_id": comment["id"], "reason": f"report {index}"},
                headers=self._auth_header(f"user{index}-token"),
            )
            self.assertTrue(resp.json()["is_approved"])

        final = self.client.post(
            "/api/comments/report",
            json={"comment_id": comment["id"], "reason": "report 5"},
            headers=self._auth_header("user5-token"),
        )
        self.assertEqual(final.status_code, 200)
        self.assertEqual(final.json()["reported_count"], 5)
        self.assertFalse(final.json()["is_approved"])

        stored = self._load_comment(comment["id"])
        self.assertFalse(stored.is_approved)
        self.assertEqual(stored.report_reason, "report 5")
        self.assertEqual(self.client.get(f"/api/comments?novel_id={self.novel_id}").json(), [])

    def test_reactions_switch_type_and_reject_repeats(self) -> None:
        comment = self._post_comment("nice chapter")
        url = f"/api/comments/{comment['id']}/reactions"

        liked = self.client.post(url, params={"action": "like"}, headers=self._auth_header("user1-token"))
        self.assertEqual(liked.json()["likes_count"], 1)

        repeat = self.client.post(url, params={"action": "like"}, headers=self._auth_header("user1-token"))
        self.assertEqual(repeat.status_code, 400)
        self.assertEqual(repeat.json()["detail"], "Already liked this comment")

        switched = self.client.post(url, params={"action": "dislike"}, headers=self._auth_header("user1-token"))
        self.assertEqual(switched.json()["likes_count"], 0)
        self.assertEqual(switched.json()["dislikes_count"], 1)

        removed = self.client.delete(url, params={"action": "dislike"}, headers=self._auth_header("user1-token"))
        self.assertEqual(removed.json()["dislikes_count"], 0)

        invalid = self.client.post(url, params={"action": "love"}, headers=self._auth_header("user1-token"))
        self.assertEqual(invalid.status_code, 400)

    def test_has_liked_reflects_caller(self) -> None:
        comment = self._post_comment("liked one")
        self.client.post(
            f"/api/comments/{comment['id']}/reactions",
            params={"action": "like"},
            headers=self._auth_header("user2-token"),
        )

        as_liker = self.client.get(f"/api/comments?novel_id={self.novel_id}", headers=self._auth_header("user2-token"))
        as_other = self.client.get(f"/api/comments?novel_id={self.novel_id}", headers=self._auth_header("user3-token"))
        self.assertTrue(as_liker.json()[0]["has_liked"])
        self.assertFalse(as_other.json()[0]["has_liked"])

    def test_admin_routes_require_admin_role(self) -> None:
        comment = self._post_comment("hello")
        url = f"/api/admin/novels/{self.novel_id}/comments/{comment['id']}/flag"

        anonymous = self.client.post(url, follow_redirects=False)
        self.assertEqual(anonymous.status_code, 401)

        regular = self.client.post(url, headers=self._auth_header("reader-token"), follow_redirects=False)
        self.assertEqual(regular.status_code, 403)

    def test_admin_flag_sets_fields_and_notifies_author(self) -> None:
        comment = self._post_comment("borderline")

        resp = self.client.post(
            f"/api/admin/novels/{self.novel_id}/comments/{comment['id']}/flag",
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        path, query = self._redirect_query(resp.headers["location"])
        self.assertEqual(path, f"/admin/novels/{self.novel_id}/comments")
        self.assertIn("success", query)

        stored = self._load_comment(comment["id"])
        self.assertTrue(stored.is_flagged)
        self.assertEqual(stored.flag_reason, "Flagged by admin for review")
        self.assertEqual(stored.flagged_by, "admin")
        self.assertIsNotNone(stored.flagged_at)

        notifications = self._notifications_for("reader")
        self.assertEqual([item.type for item in notifications], ["comment_flagged"])
        self.assertEqual(notifications[0].data["comment_id"], comment["id"])

    def test_admin_approve_clears_flag_and_restores_visibility(self) -> None:
        comment = self._post_comment("was hidden")
        with Session(self.engine) as db:
            row = db.get(Comment, comment["id"])
            row.is_approved = False
            row.is_flagged = True
            row.flag_reason = "spam"
            db.add(row)
            db.commit()

        resp = self.client.post(
            f"/api/admin/novels/{self.novel_id}/comments/{comment['id']}/approve",
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)

        stored = self._load_comment(comment["id"])
        self.assertTrue(stored.is_approved)
        self.assertFalse(stored.is_flagged)
        self.assertIsNone(stored.flag_reason)
        self.assertEqual(stored.reviewed_by, "admin")
        self.assertEqual([item.type for item in self._notifications_for("reader")], ["comment_approved"])

    def test_admin_delete_removes_thread_reports_and_reactions(self) -> None:
        parent = self._post_comment("parent")
        child = self._post_comment("child", token="author-token", parent_comment_id=parent["id"])
        self.client.post(
            "/api/comments/report",
            json={"comment_id": parent["id"], "reason": "spam"},
            headers=self._auth_header("user1-token"),
        )
        self.client.post(
            f"/api/comments/{child['id']}/reactions",
            params={"action": "like"},
            headers=self._auth_header("user2-token"),
        )

        resp = self.client.post(
            f"/api/admin/novels/{self.novel_id}/comments/{parent['id']}/delete",
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)

        with Session(self.engine) as db:
            self.assertEqual(db.exec(select(Comment)).all(), [])
            self.assertEqual(db.exec(select(CommentReport)).all(), [])
            self.assertEqual(db.exec(select(CommentReaction)).all(), [])
        self.assertEqual([item.type for item in self._notifications_for("reader")], ["comment_deleted_admin"])

    def test_admin_action_on_unknown_comment_redirects_with_error(self) -> None:
        resp = self.client.post(
            f"/api/admin/novels/{self.novel_id}/comments/999/approve",
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        path, query = self._redirect_query(resp.headers["location"])
        self.assertEqual(path, f"/admin/novels/{self.novel_id}/comments")
        self.assertEqual(query["error"], ["Comment not found"])

    def test_admin_reply_is_auto_approved_and_listed_for_admin(self) -> None:
        parent = self._post_comment("question for the author")

        resp = self.client.post(
            f"/api/admin/comments/{parent['id']}/reply",
            data={"content": "Thanks for reading"},
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)

        listed = self.client.get(
            f"/api/admin/novels/{self.novel_id}/comments",
            headers=self._auth_header("admin-token"),
        )
        self.assertEqual(listed.status_code, 200)
        replies = [item for item in listed.json() if item["parent_comment_id"] == parent["id"]]
        self.assertEqual(len(replies), 1)
        self.assertTrue(replies[0]["is_approved"])
        self.assertEqual(replies[0]["user_id"], "admin")

        missing_content = self.client.post(
            f"/api/admin/comments/{parent['id']}/reply",
            data={},
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(missing_content.status_code, 400)

    def _post_chapter_comment(self, content: str, *, token: str = "reader-token") -> dict:
        resp = self.client.post(
            "/api/comments",
            json={"chapter_id": self.chapter_id, "content": content},
            headers=self._auth_header(token),
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def _chapter_admin_post(self, comment_id: int, action: str, **kwargs):
        return self.client.post(
            f"/api/admin/novels/{self.novel_id}/chapters/{self.chapter_id}/comments/{comment_id}/{action}",
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
            **kwargs,
        )

    def test_report_and_reaction_on_deleted_comment_return_404(self) -> None:
        comment = self._post_comment("soon gone")
        self.client.delete(f"/api/comments/{comment['id']}", headers=self._auth_header("reader-token"))

        report = self.client.post(
            "/api/comments/report",
            json={"comment_id": comment["id"], "reason": "spam"},
            headers=self._auth_header("user1-token"),
        )
        self.assertEqual(report.status_code, 404)

        like = self.client.post(
            f"/api/comments/{comment['id']}/reactions",
            params={"action": "like"},
            headers=self._auth_header("user1-token"),
        )
        self.assertEqual(like.status_code, 404)

        stored = self._load_comment(comment["id"])
        self.assertEqual(stored.reported_count, 0)
        self.assertEqual(stored.likes_count, 0)

    def test_admin_moderates_chapter_comments_on_the_chapter_page(self) -> None:
        comment = self._post_chapter_comment("spoilers ahead")
        chapter_page = f"/admin/novels/{self.novel_id}/chapters/{self.chapter_id}/comments"

        listed = self.client.get(f"/api{chapter_page}", headers=self._auth_header("admin-token"))
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([item["id"] for item in listed.json()], [comment["id"]])

        flagged = self._chapter_admin_post(comment["id"], "flag", data={"reason": "spoilers"})
        self.assertEqual(flagged.status_code, 303)
        path, query = self._redirect_query(flagged.headers["location"])
        self.assertEqual(path, chapter_page)
        self.assertEqual(query["success"], ["Comment flagged successfully"])
        self.assertEqual(self._load_comment(comment["id"]).flag_reason, "spoilers")

        notification = self._notifications_for("reader")[0]
        self.assertIn('"Low Tide" of "The Clockwork Sea"', notification.message)
        self.assertEqual(notification.data["chapter_id"], self.chapter_id)

        approved = self._chapter_admin_post(comment["id"], "approve")
        self.assertEqual(self._success_message(approved), ["Comment approved successfully"])
        self.assertFalse(self._load_comment(comment["id"]).is_flagged)

        pinned = self._chapter_admin_post(comment["id"], "pin")
        self.assertEqual(self._success_message(pinned), ["Comment pinned successfully"])
        self.assertTrue(self._load_comment(comment["id"]).is_pinned)

        deleted = self._chapter_admin_post(comment["id"], "delete")
        self.assertEqual(self._redirect_query(deleted.headers["location"])[0], chapter_page)
        self.assertIsNone(self._load_comment(comment["id"]))

    def test_chapter_scope_rejects_novel_comments(self) -> None:
        comment = self._post_comment("on the novel itself")

        resp = self._chapter_admin_post(comment["id"], "flag")
        self.assertEqual(resp.status_code, 303)
        path, query = self._redirect_query(resp.headers["location"])
        self.assertEqual(path, f"/admin/novels/{self.novel_id}/chapters/{self.chapter_id}/comments")
        self.assertEqual(query["error"], ["Comment not found"])
        self.assertFalse(self._load_comment(comment["id"]).is_flagged)

        other_novel = self.client.get(
            f"/api/admin/novels/{self.novel_id + 1}/chapters/{self.chapter_id}/comments",
            headers=self._auth_header("admin-token"),
        )
        self.assertEqual(other_novel.status_code, 404)

    def test_admin_pin_and_unpin_novel_comment(self) -> None:
        first = self._post_comment("first")
        second = self._post_comment("second")
        url = f"/api/admin/novels/{self.novel_id}/comments/{second['id']}"

        pinned = self.client.post(f"{url}/pin", headers=self._auth_header("admin-token"), follow_redirects=False)
        self.assertEqual(pinned.status_code, 303)
        listed = self.client.get(f"/api/comments?novel_id={self.novel_id}").json()
        self.assertEqual([item["id"] for item in listed][0], second["id"])

        unpinned = self.client.post(f"{url}/unpin", headers=self._auth_header("admin-token"), follow_redirects=False)
        self.assertEqual(self._success_message(unpinned), ["Comment unpinned successfully"])
        self.assertFalse(self._load_comment(second["id"]).is_pinned)
        self.assertTrue(self._load_comment(first["id"]).is_approved)
        self.assertEqual(self._notifications_for("reader"), [])

        unknown = self.client.post(f"{url}/archive", headers=self._auth_header("admin-token"), follow_redirects=False)
        self.assertEqual(unknown.status_code, 400)

    def test_admin_reply_on_chapter_comment_returns_to_chapter_page(self) -> None:
        parent = self._post_chapter_comment("when is the next chapter?")

        resp = self.client.post(
            f"/api/admin/comments/{parent['id']}/reply",
            data={"content": "Next week"},
            headers=self._auth_header("admin-token"),
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        path, query = self._redirect_query(resp.headers["location"])
        self.assertEqual(path, f"/admin/novels/{self.novel_id}/chapters/{self.chapter_id}/comments")
        self.assertEqual(query["success"], ["Reply posted successfully"])


if __name__ == "__main__":
    unittest.main()
