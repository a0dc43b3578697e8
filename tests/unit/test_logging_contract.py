"""
Tests for the logging contract and formatters.

No kwargs to logger calls; contextual fields only via extra={"context": {...}}.
"""

import ast
import json
import logging
import unittest
from pathlib import Path
from typing import Any, Dict, List

from core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    clear_global_context,
    get_logger,
    mask_url,
    set_global_context,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent
SOURCE_PATHS = ["chains", "core", "config", "monitoring", "run_probe.py"]


class TestLoggingContractEnforcement(unittest.TestCase):
    """AST-based tests for logging contract."""

    ALLOWED_KWARGS = {"exc_info", "extra", "stack_info", "stacklevel"}

    def _find_logger_violations(self, source_code: str) -> List[Dict[str, Any]]:
        """Find logger calls with invalid kwargs using AST."""
        violations = []

        try:
            tree = ast.parse(source_code)
        except SyntaxError:
            return violations

        for node in ast.walk(tree):
            if not isinstance(node, ast.Call):
                continue
            if not isinstance(node.func, ast.Attribute):
                continue

            method_name = node.func.attr
            if method_name not in ("debug", "info", "warning", "error", "critical", "exception"):
                continue

            obj = node.func.value
            if isinstance(obj, ast.Name):
                is_logger = "log" in obj.id.lower()
            elif isinstance(obj, ast.Attribute):
                is_logger = "log" in obj.attr.lower()
            else:
                is_logger = False

            if not is_logger:
                continue

            for kw in node.keywords:
                if kw.arg and kw.arg not in self.ALLOWED_KWARGS:
                    violations.append({
                        "line": node.lineno,
                        "method": method_name,
                        "invalid_kwarg": kw.arg,
                    })

        return violations

    def _source_files(self) -> List[Path]:
        files = []
        for name in SOURCE_PATHS:
            path = PROJECT_ROOT / name
            if path.is_dir():
                files.extend(sorted(path.rglob("*.py")))
            elif path.exists():
                files.append(path)
        return files

    def test_sources_found(self):
        self.assertTrue(any(p.name == "retry.py" for p in self._source_files()))

    def test_no_invalid_kwargs(self):
        """Every engine module logs through extra={"context": ...} only."""
        msg = ""
        for filepath in self._source_files():
            violations = self._find_logger_violations(filepath.read_text(encoding="utf-8"))
            for v in violations:
                msg += f"  {filepath.name}:{v['line']}: logger.{v['method']}(..., {v['invalid_kwarg']}=...)\n"

        if msg:
            self.fail("Found logging violations:\n" + msg)

    def test_detector_flags_kwargs(self):
        violations = self._find_logger_violations('logger.warning("x", endpoint="a")')

        self.assertEqual(violations[0]["invalid_kwarg"], "endpoint")


class TestFormatters(unittest.TestCase):
    """JSON and console output."""

    def setUp(self):
        clear_global_context()

    def tearDown(self):
        clear_global_context()

    def _record(self, context=None) -> logging.LogRecord:
        record = logging.LogRecord(
            "licensekit.chains.retry", logging.WARNING, __file__, 1,
            "RPC attempt failed", None, None,
        )
        if context is not None:
            record.context = context
        return record

    def test_json_formatter_includes_context(self):
        set_global_context(service="licensekit-test")

        line = JSONFormatter().format(self._record({"attempt": 2}))
        entry = json.loads(line)

        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["logger"], "licensekit.chains.retry")
        self.assertEqual(entry["message"], "RPC attempt failed")
        self.assertEqual(entry["context"], {"service": "licensekit-test", "attempt": 2})

    def test_json_formatter_without_context(self):
        entry = json.loads(JSONFormatter().format(self._record()))

        self.assertNotIn("context", entry)

    def test_console_formatter_truncates_context(self):
        line = ConsoleFormatter().format(self._record({f"k{i}": i for i in range(6)}))

        self.assertIn("RPC attempt failed", line)
        self.assertIn("k0=0", line)
        self.assertIn("(+2 more)", line)


class TestContextAdapter(unittest.TestCase):
    """Adapter context merges with per-call context."""

    def setUp(self):
        self.records = []

        class CapturingHandler(logging.Handler):
            def __init__(self, records_list):
                super().__init__()
                self.records = records_list

            def emit(self, record):
                self.records.append(record)

        self.base = logging.getLogger(f"licensekit.test_capture_{id(self)}")
        self.base.setLevel(logging.DEBUG)
        self.base.handlers = [CapturingHandler(self.records)]

    def test_adapter_and_call_context_merge(self):
        logger = get_logger(self.base.name, chain_id=137)

        logger.info("Connected", extra={"context": {"block_number": 5}})

        self.assertEqual(self.records[0].context, {"chain_id": 137, "block_number": 5})

    def test_call_context_wins(self):
        logger = get_logger(self.base.name, chain_id=137)

        logger.info("x", extra={"context": {"chain_id": 1}})

        self.assertEqual(self.records[0].context["chain_id"], 1)


class TestLoggerNames(unittest.TestCase):
    """Engine loggers live under the licensekit root."""

    def test_default_loggers_are_namespaced(self):
        from chains import endpoints
        from chains.endpoints import Endpoint, EndpointPool
        from chains.failover import FailoverSequencer
        from chains.retry import CallExecutor, RetryPolicy

        pool = EndpointPool((Endpoint("https://a.example", 137),))
        names = {
            endpoints.logger.logger.name,
            CallExecutor()._logger.logger.name,
            FailoverSequencer(pool, RetryPolicy())._logger.logger.name,
        }

        self.assertEqual(
            names,
            {"licensekit.chains.endpoints", "licensekit.chains.retry", "licensekit.chains.failover"},
        )


class TestMaskUrl(unittest.TestCase):

    def test_masks_alchemy_and_infura_keys(self):
        self.assertEqual(
            mask_url("https://eth-mainnet.g.alchemy.com/v2/abcdefghijklmnop"),
            "https://eth-mainnet.g.alchemy.com/v2/abcd****mnop",
        )
        self.assertEqual(
            mask_url("https://mainnet.infura.io/v3/0123456789abcdef"),
            "https://mainnet.infura.io/v3/0123****cdef",
        )

    def test_plain_url_untouched(self):
        self.assertEqual(mask_url("http://localhost:8545"), "http://localhost:8545")


if __name__ == "__main__":
    unittest.main()
