import unittest

from filedepot.dashboard import (
    FORBIDDEN_MESSAGE,
    HOME_ROUTE,
    SIGN_IN_ROUTE,
    AccessGate,
    AdminDashboard,
    GateState,
)
from filedepot.db import InMemoryDbClient
from filedepot.session import (
    DbIdentityProvider,
    InMemorySessionStore,
    RedisSessionStore,
    SessionContext,
    create_user,
)
from filedepot.storage import InMemoryStorageClient
from filedepot.uploads import IncomingFile, UploadWorkflow


class SessionTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.sessions = InMemorySessionStore()
        self.identity = DbIdentityProvider(self.db, self.sessions)
        self.context = SessionContext(self.identity)
        self.context.start()
        self.addCleanup(self.context.close)
        create_user(self.identity, "admin@example.com", "secret-admin", is_admin=True)
        create_user(self.identity, "user@example.com", "secret-user")

    def sign_in(self, email, password):
        token, notice = self.context.sign_in(email, password)
        self.assertIsNotNone(token, notice.message)
        return token


class SessionContextTests(SessionTestCase):
    def test_snapshot_requires_start(self):
        context = SessionContext(self.identity)
        with self.assertRaises(RuntimeError):
            context.snapshot(None)

    def test_sign_in_and_snapshot(self):
        token = self.sign_in("Admin@Example.com ", "secret-admin")
        snapshot = self.context.snapshot(token)
        self.assertTrue(snapshot.is_authenticated)
        self.assertTrue(snapshot.is_admin)
        self.assertEqual(snapshot.user.email, "admin@example.com")

    def test_wrong_password(self):
        token, notice = self.context.sign_in("user@example.com", "nope")
        self.assertIsNone(token)
        self.assertEqual(notice.kind, "unauthorized")

    def test_missing_credentials(self):
        token, notice = self.context.sign_in("", "")
        self.assertIsNone(token)
        self.assertEqual(notice.kind, "validation")

    def test_sign_up_rules(self):
        self.assertEqual(self.context.sign_up("not-an-email", "longenough").kind, "validation")
        self.assertEqual(self.context.sign_up("new@example.com", "123").kind, "validation")
        self.assertEqual(self.context.sign_up("user@example.com", "longenough").kind, "conflict")
        created = self.context.sign_up("new@example.com", "longenough")
        self.assertEqual(created.level, "success")
        self.assertFalse(self.context.snapshot(self.sign_in("new@example.com", "longenough")).is_admin)

    def test_listeners_see_sign_in_and_sign_out(self):
        changes = []
        unsubscribe = self.context.subscribe(changes.append)

        token = self.sign_in("user@example.com", "secret-user")
        self.context.sign_out(token)
        unsubscribe()
        self.sign_in("user@example.com", "secret-user")

        self.assertEqual(len(changes), 2)
        self.assertFalse(changes[0].previous.is_authenticated)
        self.assertTrue(changes[0].current.is_authenticated)
        self.assertTrue(changes[1].previous.is_authenticated)
        self.assertFalse(changes[1].current.is_authenticated)
        self.assertFalse(self.context.snapshot(token).is_authenticated)

    def test_failing_listener_does_not_break_others(self):
        seen = []

        def broken(change):
            raise RuntimeError("listener bug")

        self.context.subscribe(broken)
        self.context.subscribe(seen.append)
        with self.assertLogs("filedepot.session", level="ERROR"):
            self.sign_in("user@example.com", "secret-user")
        self.assertEqual(len(seen), 1)


class UnreachableSessionStoreTests(unittest.TestCase):
    """Nothing listens on port 1, so every Redis call is refused."""

    def setUp(self):
        db = InMemoryDbClient()
        self.sessions = RedisSessionStore("redis://127.0.0.1:1/0")
        identity = DbIdentityProvider(db, self.sessions)
        create_user(identity, "user@example.com", "secret-user")
        self.context = SessionContext(identity)
        self.context.start()
        self.addCleanup(self.context.close)

    def test_sign_in_reports_failure_notice(self):
        with self.assertLogs("filedepot.session", level="ERROR"):
            token, notice = self.context.sign_in("user@example.com", "secret-user")
        self.assertIsNone(token)
        self.assertEqual(notice.message, "Could not sign in")
        self.assertEqual(notice.kind, "failure")

    def test_sign_out_reports_failure_notice(self):
        with self.assertLogs("filedepot.session", level="ERROR"):
            notice = self.context.sign_out("some-token")
        self.assertEqual(notice.message, "Could not sign out")

    def test_lookup_treats_session_as_absent(self):
        self.assertFalse(self.context.snapshot("some-token").is_authenticated)


class AccessGateTests(SessionTestCase):
    def test_starts_checking(self):
        gate = AccessGate(self.context, None)
        self.assertEqual(gate.state, GateState.CHECKING)
        self.assertFalse(gate.granted)

    def test_anonymous_is_sent_to_sign_in(self):
        gate = AccessGate(self.context, None)
        self.assertEqual(gate.mount(), GateState.REDIRECT_UNAUTHENTICATED)
        self.assertEqual(gate.redirect_to, SIGN_IN_ROUTE)
        self.assertIsNone(gate.notice)

    def test_non_admin_is_sent_home_with_notice(self):
        gate = AccessGate(self.context, self.sign_in("user@example.com", "secret-user"))
        self.assertEqual(gate.mount(), GateState.REDIRECT_FORBIDDEN)
        self.assertEqual(gate.redirect_to, HOME_ROUTE)
        self.assertEqual(gate.notice.message, FORBIDDEN_MESSAGE)
        self.assertEqual(gate.notice.kind, "forbidden")

    def test_admin_granted_until_sign_out(self):
        token = self.sign_in("admin@example.com", "secret-admin")
        gate = AccessGate(self.context, token)
        self.assertEqual(gate.mount(), GateState.GRANTED)
        self.assertIsNone(gate.redirect_to)

        self.context.sign_out(token)

        self.assertEqual(gate.state, GateState.REDIRECT_UNAUTHENTICATED)
        gate.unmount()

    def test_other_sessions_do_not_move_gate(self):
        token = self.sign_in("admin@example.com", "secret-admin")
        gate = AccessGate(self.context, token)
        gate.mount()
        self.addCleanup(gate.unmount)

        self.context.sign_out(self.sign_in("user@example.com", "secret-user"))

        self.assertTrue(gate.granted)


class AdminDashboardTests(SessionTestCase):
    def setUp(self):
        super().setUp()
        self.storage = InMemoryStorageClient()

    def make_dashboard(self, token):
        gate = AccessGate(self.context, token)
        gate.mount()
        self.addCleanup(gate.unmount)
        uploads = UploadWorkflow(self.db, self.storage, user_id="admin")
        return AdminDashboard(gate, self.db, self.storage, uploads)

    def test_refuses_without_grant(self):
        self.db.failing_operations.add("list_files")
        with self.assertRaises(PermissionError):
            self.make_dashboard(None)
        with self.assertRaises(PermissionError):
            self.make_dashboard(self.sign_in("user@example.com", "secret-user"))

    def test_upload_refreshes_stats(self):
        dashboard = self.make_dashboard(self.sign_in("admin@example.com", "secret-admin"))
        self.assertEqual(dashboard.active_tab, "upload")

        dashboard.upload([IncomingFile("a.txt", b"12345"), IncomingFile("b.txt", b"678")])

        self.assertEqual(dashboard.stats.total_files, 2)
        self.assertEqual(dashboard.stats.total_size, 8)
        self.assertEqual(len(dashboard.catalog.files), 2)

    def test_select_tab_falls_back_to_upload(self):
        dashboard = self.make_dashboard(self.sign_in("admin@example.com", "secret-admin"))
        self.assertEqual(dashboard.select_tab("categories"), "categories")
        self.assertEqual(dashboard.select_tab("bogus"), "upload")

    def test_delete_file_refreshes_stats(self):
        dashboard = self.make_dashboard(self.sign_in("admin@example.com", "secret-admin"))
        item = dashboard.upload([IncomingFile("a.txt", b"12345")])[0]

        notice = dashboard.delete_file(item.file_id, confirmed=True)

        self.assertEqual(notice.level, "success")
        self.assertEqual(dashboard.stats.total_files, 0)


if __name__ == "__main__":
    unittest.main()
