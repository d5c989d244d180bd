import random
import unittest

from PySide6.QtCore import QCoreApplication

from src.engine.reconciler import EditReconciler, parse_time_input
from src.engine.regions import HeadlessRegionOverlay, RegionMirror
from src.engine.subtitle import Segment, SegmentSource, Transcript
from src.engine.tracker import ActiveSegmentTracker
from src.utils.settings import EngineSettings

app = QCoreApplication.instance() or QCoreApplication([])


def make_reconciler(**settings_kwargs):
    overlay = HeadlessRegionOverlay()
    tracker = ActiveSegmentTracker()
    reconciler = EditReconciler(
        RegionMirror(overlay),
        tracker=tracker,
        settings=EngineSettings(**settings_kwargs),
    )
    return reconciler, overlay


def bounds(overlay: HeadlessRegionOverlay, region_id: str):
    region = overlay.get_region(region_id)
    return None if region is None else (region.start, region.end)


def assert_consistent(test: unittest.TestCase, reconciler: EditReconciler):
    transcript = reconciler.transcript
    starts = [seg.start for seg in transcript.segments]
    test.assertEqual(starts, sorted(starts))
    test.assertEqual(reconciler.mirror.region_ids(), set(transcript.segment_ids()))
    reconciler.verify()


class EditReconcilerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.reconciler, self.overlay = make_reconciler()
        self.reconciler.load_transcript(
            Transcript(
                time_horizon=30.0,
                segments=[
                    Segment(id="a", start=1.0, end=4.0, text="first"),
                    Segment(id="b", start=6.0, end=9.0, text="second"),
                ],
            )
        )
        self.tracker = self.reconciler.tracker

    def ready(self):
        self.reconciler.on_audio_ready()

    def test_load_transcript_before_audio_has_no_regions(self) -> None:
        self.assertEqual(self.reconciler.mirror.region_ids(), set())
        self.ready()
        assert_consistent(self, self.reconciler)

    def test_edit_text_does_not_touch_regions(self) -> None:
        self.ready()
        self.assertTrue(self.reconciler.edit_text("a", "changed"))

        self.assertEqual(self.reconciler.transcript.get_segment("a").text, "changed")
        self.assertEqual(bounds(self.overlay, "a"), (1.0, 4.0))

    def test_edit_text_unknown_segment_is_ignored(self) -> None:
        before = self.reconciler.transcript
        self.assertFalse(self.reconciler.edit_text("missing", "x"))
        self.assertIs(self.reconciler.transcript, before)

    def test_edit_start_targets_active_segment(self) -> None:
        self.ready()
        self.tracker.on_region_enter("a")

        self.assertTrue(self.reconciler.edit_start(2.0))

        self.assertEqual(self.reconciler.transcript.get_segment("a").start, 2.0)
        self.assertEqual(bounds(self.overlay, "a"), (2.0, 4.0))
        assert_consistent(self, self.reconciler)

    def test_time_edit_without_active_segment_is_ignored(self) -> None:
        self.ready()
        before = self.reconciler.transcript
        self.assertFalse(self.reconciler.edit_start(2.0))
        self.assertIs(self.reconciler.transcript, before)

    def test_start_edit_creates_missing_region_with_existing_end(self) -> None:
        self.reconciler.load_transcript(
            Transcript(segments=[Segment(id="lazy", start=1.0, end=8.0)])
        )
        self.tracker.on_region_enter("lazy")

        self.reconciler.edit_start("3")

        self.assertEqual(bounds(self.overlay, "lazy"), (3.0, 8.0))
        seg = self.reconciler.transcript.get_segment("lazy")
        self.assertEqual((seg.start, seg.end), (3.0, 8.0))

    def test_end_edit_creates_missing_region_with_existing_start(self) -> None:
        self.tracker.on_region_enter("b")

        self.reconciler.edit_end(7.5)

        self.assertEqual(bounds(self.overlay, "b"), (6.0, 7.5))

    def test_start_edit_resorts_segments(self) -> None:
        self.ready()
        self.tracker.on_region_enter("a")
        self.reconciler.edit_end(12.0)
        self.reconciler.edit_start(7.0)

        self.assertEqual(self.reconciler.transcript.segment_ids(), ["b", "a"])
        assert_consistent(self, self.reconciler)

    def test_unparseable_time_input_is_ignored(self) -> None:
        self.ready()
        self.tracker.on_region_enter("a")
        for raw in ("", "  ", "abc", "nan", "inf"):
            with self.subTest(raw=raw):
                self.assertFalse(self.reconciler.edit_start(raw))
        self.assertEqual(self.reconciler.transcript.get_segment("a").start, 1.0)

    def test_region_commit_updates_segment(self) -> None:
        self.ready()
        self.overlay.update_region("a", 7.0, 10.0)

        self.assertTrue(self.reconciler.commit_region("a", 7.0, 10.0))

        seg = self.reconciler.transcript.get_segment("a")
        self.assertEqual((seg.start, seg.end), (7.0, 10.0))
        self.assertEqual(self.reconciler.transcript.segment_ids(), ["b", "a"])
        assert_consistent(self, self.reconciler)

    def test_region_commit_for_unknown_segment_is_ignored(self) -> None:
        self.ready()
        self.assertFalse(self.reconciler.commit_region("ghost", 1.0, 2.0))

    def test_add_segment_at_playback_time(self) -> None:
        self.reconciler.load_transcript(
            Transcript(
                time_origin=100.0,
                time_horizon=200.0,
                segments=[
                    Segment(id="x", start=105.0, end=108.0),
                    Segment(id="y", start=120.0, end=125.0),
                ],
            )
        )
        self.ready()

        new_id = self.reconciler.add_segment(12.0)

        self.assertIsNotNone(new_id)
        seg = self.reconciler.transcript.get_segment(new_id)
        self.assertEqual((seg.start, seg.end), (112.0, 117.0))
        self.assertEqual(seg.text, "")
        self.assertEqual(seg.source, SegmentSource.USER)
        self.assertEqual(self.reconciler.transcript.segment_ids(), ["x", new_id, "y"])
        self.assertEqual(bounds(self.overlay, new_id), (12.0, 17.0))
        assert_consistent(self, self.reconciler)

    def test_add_segment_uses_configured_length(self) -> None:
        reconciler, overlay = make_reconciler(new_segment_length=2.5)
        new_id = reconciler.add_segment(1.0)
        self.assertEqual(bounds(overlay, new_id), (1.0, 3.5))

    def test_delete_segment_removes_region_and_active_state(self) -> None:
        self.ready()
        self.tracker.on_region_enter("a")

        self.assertTrue(self.reconciler.delete_segment("a"))

        self.assertIsNone(self.reconciler.transcript.get_segment("a"))
        self.assertIsNone(self.overlay.get_region("a"))
        self.assertIsNone(self.tracker.active_id)
        self.assertFalse(self.reconciler.delete_segment("a"))
        assert_consistent(self, self.reconciler)

    def test_load_transcript_after_ready_rebuilds_regions(self) -> None:
        self.ready()
        self.reconciler.load_transcript(
            Transcript(segments=[Segment(id="z", start=3.0, end=5.0)])
        )
        self.assertEqual(self.reconciler.mirror.region_ids(), {"z"})
        assert_consistent(self, self.reconciler)

    def test_transcript_changed_only_emits_sorted_snapshots(self) -> None:
        self.ready()
        seen: list = []
        self.reconciler.transcript_changed.connect(seen.append)

        self.reconciler.add_segment(0.0)
        self.reconciler.edit_text("a", "first")  # unchanged text
        self.reconciler.add_segment(3.0)

        self.assertEqual(len(seen), 2)
        for snapshot in seen:
            starts = [seg.start for seg in snapshot.segments]
            self.assertEqual(starts, sorted(starts))


class IntervalPolicyTests(unittest.TestCase):
    def setup_policy(self, **kwargs):
        reconciler, overlay = make_reconciler(**kwargs)
        reconciler.load_transcript(
            Transcript(segments=[Segment(id="a", start=1.0, end=4.0)])
        )
        reconciler.on_audio_ready()
        reconciler.tracker.on_region_enter("a")
        return reconciler, overlay

    def segment_bounds(self, reconciler):
        seg = reconciler.transcript.get_segment("a")
        return seg.start, seg.end

    def test_reject_keeps_prior_bounds(self) -> None:
        reconciler, overlay = self.setup_policy(interval_policy="reject")

        self.assertFalse(reconciler.edit_end(0.5))
        self.assertFalse(reconciler.edit_start(-1.0))
        self.assertFalse(reconciler.edit_start(4.0))

        self.assertEqual(self.segment_bounds(reconciler), (1.0, 4.0))
        self.assertEqual(bounds(overlay, "a"), (1.0, 4.0))

    def test_reject_pushes_region_back_after_bad_drag(self) -> None:
        reconciler, overlay = self.setup_policy(interval_policy="reject")
        overlay.update_region("a", 3.0, 3.0)

        self.assertFalse(reconciler.commit_region("a", 3.0, 3.0))

        self.assertEqual(bounds(overlay, "a"), (1.0, 4.0))
        reconciler.verify()

    def test_clamp_moves_edited_bound(self) -> None:
        reconciler, overlay = self.setup_policy(
            interval_policy="clamp", min_segment_length=0.5
        )

        reconciler.edit_end(0.5)
        self.assertEqual(self.segment_bounds(reconciler), (1.0, 1.5))

        reconciler.edit_start(3.0)
        self.assertEqual(self.segment_bounds(reconciler), (1.0, 1.5))

        reconciler.edit_start(-2.0)
        self.assertEqual(self.segment_bounds(reconciler), (0.0, 1.5))
        self.assertEqual(bounds(overlay, "a"), (0.0, 1.5))
        reconciler.verify()

    def test_clamp_start_past_end(self) -> None:
        reconciler, overlay = self.setup_policy(
            interval_policy="clamp", min_segment_length=0.5
        )
        reconciler.edit_start(10.0)

        self.assertEqual(self.segment_bounds(reconciler), (3.5, 4.0))
        self.assertEqual(bounds(overlay, "a"), (3.5, 4.0))

    def test_accept_stores_degenerate_interval(self) -> None:
        reconciler, overlay = self.setup_policy(interval_policy="accept")

        self.assertTrue(reconciler.edit_end(0.5))

        self.assertEqual(self.segment_bounds(reconciler), (1.0, 0.5))
        self.assertEqual(bounds(overlay, "a"), (1.0, 0.5))

    def test_snap_grid_applies_to_region_commits(self) -> None:
        reconciler, overlay = self.setup_policy(snap_step=0.5)
        overlay.update_region("a", 1.2, 3.9)

        reconciler.commit_region("a", 1.2, 3.9)

        self.assertEqual(self.segment_bounds(reconciler), (1.0, 4.0))
        self.assertEqual(bounds(overlay, "a"), (1.0, 4.0))
        reconciler.verify()


class RandomEditSequenceTests(unittest.TestCase):
    """Sort order and region/segment bijection hold after every edit."""

    def run_sequence(self, policy: str, seed: int) -> None:
        rng = random.Random(seed)
        reconciler, overlay = make_reconciler(interval_policy=policy)
        reconciler.load_transcript(
            Transcript(
                time_origin=2.5,
                time_horizon=80.0,
                segments=[
                    Segment(id=f"seed-{i}", start=2.5 + i * 6.0, end=6.5 + i * 6.0)
                    for i in range(5)
                ],
            )
        )
        reconciler.on_audio_ready()
        assert_consistent(self, reconciler)

        for _ in range(150):
            ids = reconciler.transcript.segment_ids()
            op = rng.choice(["add", "text", "start", "end", "drag", "delete"])
            if op == "add" or not ids:
                reconciler.add_segment(round(rng.uniform(0, 70), 3))
            elif op == "text":
                reconciler.edit_text(rng.choice(ids), f"t{rng.randint(0, 9)}")
            elif op in ("start", "end"):
                reconciler.tracker.on_region_enter(rng.choice(ids))
                value = round(rng.uniform(-5, 80), 3)
                if op == "start":
                    reconciler.edit_start(value)
                else:
                    reconciler.edit_end(value)
            elif op == "drag":
                rid = rng.choice(ids)
                start = round(rng.uniform(0, 70), 3)
                end = start + round(rng.uniform(-1, 8), 3)
                overlay.update_region(rid, start, end)
                reconciler.commit_region(rid, start, end)
            else:
                reconciler.delete_segment(rng.choice(ids))

            assert_consistent(self, reconciler)

    def test_sequences_stay_consistent_for_every_policy(self) -> None:
        for policy in ("reject", "clamp", "accept"):
            for seed in (1, 2, 3):
                with self.subTest(policy=policy, seed=seed):
                    self.run_sequence(policy, seed)


class ParseTimeInputTests(unittest.TestCase):
    def test_values(self) -> None:
        self.assertEqual(parse_time_input("3"), 3.0)
        self.assertEqual(parse_time_input(" 4.25 "), 4.25)
        self.assertEqual(parse_time_input(7), 7.0)
        self.assertIsNone(parse_time_input(""))
        self.assertIsNone(parse_time_input("1e400"))
        self.assertIsNone(parse_time_input("twelve"))
        self.assertIsNone(parse_time_input(True))


if __name__ == "__main__":
    unittest.main()
