import unittest

from PySide6.QtCore import QCoreApplication

from src.engine.tracker import ActiveSegmentTracker

app = QCoreApplication.instance() or QCoreApplication([])


class ActiveSegmentTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tracker = ActiveSegmentTracker()
        self.changes: list = []
        self.tracker.active_changed.connect(self.changes.append)

    def test_starts_idle(self) -> None:
        self.assertIsNone(self.tracker.active_id)
        self.assertFalse(self.tracker.is_active())

    def test_enter_then_exit(self) -> None:
        self.tracker.on_region_enter("a")
        self.assertEqual(self.tracker.active_id, "a")

        self.tracker.on_region_exit("a")
        self.assertIsNone(self.tracker.active_id)
        self.assertEqual(self.changes, ["a", None])

    def test_last_enter_wins(self) -> None:
        self.tracker.on_region_enter("a")
        self.tracker.on_region_enter("b")

        self.assertEqual(self.tracker.active_id, "b")
        # No synthetic exit for the demoted id
        self.assertEqual(self.changes, ["a", "b"])

    def test_stale_exit_is_ignored(self) -> None:
        self.tracker.on_region_enter("a")
        self.tracker.on_region_enter("b")
        self.tracker.on_region_exit("a")

        self.assertEqual(self.tracker.active_id, "b")
        self.assertEqual(self.changes, ["a", "b"])

    def test_exit_while_idle_is_ignored(self) -> None:
        self.tracker.on_region_exit("a")
        self.assertIsNone(self.tracker.active_id)
        self.assertEqual(self.changes, [])

    def test_reentering_active_region_emits_nothing(self) -> None:
        self.tracker.on_region_enter("a")
        self.tracker.on_region_enter("a")
        self.assertEqual(self.changes, ["a"])

    def test_forget_only_clears_matching_id(self) -> None:
        self.tracker.on_region_enter("a")
        self.tracker.forget("b")
        self.assertEqual(self.tracker.active_id, "a")

        self.tracker.forget("a")
        self.assertIsNone(self.tracker.active_id)

    def test_is_editable_gates_on_active_id(self) -> None:
        self.tracker.on_region_enter("a")
        self.assertTrue(self.tracker.is_editable("a"))
        self.assertFalse(self.tracker.is_editable("b"))

    def test_reset(self) -> None:
        self.tracker.on_region_enter("a")
        self.tracker.reset()
        self.assertIsNone(self.tracker.active_id)


if __name__ == "__main__":
    unittest.main()
