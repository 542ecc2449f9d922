import unittest
from time import monotonic

from recordhub.core.context import CallContext
from recordhub.core.errors import QUERY_CANCELLED, QUERY_DEADLINE, QueryError


class CallContextTests(unittest.TestCase):
    def test_background_context_never_expires(self):
        ctx = CallContext.background()
        self.assertIsNone(ctx.remaining())
        ctx.raise_if_done("count")

    def test_child_shares_cancellation(self):
        parent = CallContext.background()
        child = parent.with_timeout(30)
        parent.cancel()
        self.assertTrue(child.cancelled)
        with self.assertRaises(QueryError) as raised:
            child.raise_if_done("select")
        self.assertEqual(raised.exception.reason, QUERY_CANCELLED)
        self.assertEqual(raised.exception.code, "QUERY_CANCELLED")

    def test_child_never_extends_parent_deadline(self):
        parent = CallContext.with_timeout_seconds(1)
        child = parent.with_timeout(60)
        self.assertLessEqual(child.deadline, parent.deadline)
        self.assertEqual(parent.with_timeout(0).deadline, parent.deadline)

    def test_expired_deadline(self):
        ctx = CallContext(deadline=monotonic() - 0.5)
        self.assertTrue(ctx.expired)
        with self.assertRaises(QueryError) as raised:
            ctx.raise_if_done("count")
        self.assertEqual(raised.exception.reason, QUERY_DEADLINE)
        self.assertEqual(raised.exception.operation, "count")
        self.assertTrue(raised.exception.retryable)

    def test_cancel_runs_registered_callbacks_once(self):
        parent = CallContext.background()
        child = parent.with_timeout(30)
        calls = []
        child.on_cancel(lambda: calls.append("child"))
        unregister = parent.on_cancel(lambda: calls.append("gone"))
        unregister()
        parent.cancel()
        parent.cancel()
        self.assertEqual(calls, ["child"])

    def test_callback_registered_after_cancel_runs_immediately(self):
        ctx = CallContext.background()
        ctx.cancel()
        calls = []
        ctx.on_cancel(lambda: calls.append(1))
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
