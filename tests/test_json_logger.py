import json
import logging
import tempfile
import unittest
from pathlib import Path

from PySide6.QtCore import QCoreApplication

from src.engine.reconciler import EditReconciler
from src.engine.regions import HeadlessRegionOverlay, RegionMirror
from src.utils.json_logger import (
    ROOT_LOGGER,
    JsonColoredFormatter,
    JsonFormatter,
    RequestContext,
    configure_logging,
    generate_request_id,
    get_logger,
    log_with_request_id,
)
from src.utils.settings import EngineSettings

app = QCoreApplication.instance() or QCoreApplication([])


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("reconciler", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class JsonLoggerTests(unittest.TestCase):
    def test_formatter_outputs_json_with_data(self) -> None:
        record = make_record("Segment added", request_id="req_1", data={"segment_id": "a"})

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["service"], "reconciler")
        self.assertEqual(payload["request_id"], "req_1")
        self.assertEqual(payload["message"], "Segment added")
        self.assertEqual(payload["data"], {"segment_id": "a"})

    def test_formatter_without_request_id(self) -> None:
        payload = json.loads(JsonFormatter().format(make_record("hello")))
        self.assertEqual(payload["request_id"], "N/A")
        self.assertNotIn("data", payload)

    def test_colored_formatter_wraps_json(self) -> None:
        output = JsonColoredFormatter().format(make_record("hello"))
        self.assertTrue(output.startswith("\033[0;36m"))
        self.assertTrue(output.endswith(JsonColoredFormatter.RESET))

    def test_request_ids_are_unique(self) -> None:
        ids = {generate_request_id() for _ in range(50)}
        self.assertEqual(len(ids), 50)
        self.assertTrue(all(i.startswith("req_") for i in ids))

    def test_file_logging_with_request_context(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_file = Path(tmp) / "logs" / "engine.log"
            configure_logging(log_level="DEBUG", log_file=str(log_file))
            logger = get_logger("reconciler")

            returned = log_with_request_id(logger, "first", data={"step": 1})
            with RequestContext(logger, request_id="req_ctx") as ctx:
                ctx.debug("second", data={"step": 2})

            configure_logging()
            lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]

        self.assertEqual(lines[0]["request_id"], returned)
        self.assertEqual(lines[0]["service"], "reconciler")
        self.assertEqual(lines[1]["request_id"], "req_ctx")
        self.assertEqual(lines[1]["level"], "DEBUG")
        self.assertEqual(lines[1]["data"], {"step": 2})

    def test_request_context_logs_failures(self) -> None:
        logger = get_logger("session")
        with self.assertLogs(logger, level="ERROR") as captured:
            with self.assertRaises(RuntimeError):
                with RequestContext(logger):
                    raise RuntimeError("boom")
        self.assertIn("Request failed", captured.output[0])

    def test_component_loggers_share_engine_handlers(self) -> None:
        first = get_logger("regions")
        second = get_logger("regions")
        self.assertIs(first, second)
        self.assertEqual(first.handlers, [])
        self.assertEqual(first.parent.name, ROOT_LOGGER)

        configure_logging()
        configure_logging()
        self.assertEqual(len(logging.getLogger(ROOT_LOGGER).handlers), 1)

    def test_engine_settings_reach_every_component(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_file = Path(tmp) / "engine.log"
            EditReconciler(
                RegionMirror(HeadlessRegionOverlay()),
                settings=EngineSettings(log_file=str(log_file)),
            )

            for name in ("regions", "tracker", "audio", "playback", "subtitle"):
                get_logger(name).error("component check")

            configure_logging()
            services = [
                json.loads(line)["service"]
                for line in log_file.read_text(encoding="utf-8").splitlines()
            ]

        self.assertEqual(services, ["regions", "tracker", "audio", "playback", "subtitle"])


if __name__ == "__main__":
    unittest.main()
