"""Tests for fnitout.diagnostics — severities, the sink, fatal errors."""

import logging

from fnitout.diagnostics import Diagnostic, DiagnosticSink, FatalLoweringError, Severity


class TestDiagnostic:
    def test_str_with_location(self):
        assert str(Diagnostic(4, "odd header", Severity.WARNING)) == "4: WARNING: odd header"

    def test_str_without_location(self):
        assert str(Diagnostic(None, "unused", Severity.WARNING)) == "WARNING: unused"


class TestDiagnosticSink:
    def test_records_in_order(self):
        sink = DiagnosticSink()
        sink.warn(3, "first")
        sink.warn(1, "second")
        assert [d.message for d in sink.diagnostics] == ["first", "second"]
        assert len(sink) == 2

    def test_warnings_filter(self):
        sink = DiagnosticSink()
        sink.warn(1, "w")
        sink.report(Diagnostic(2, "f", Severity.FATAL))
        assert [d.message for d in sink.warnings] == ["w"]

    def test_forwards_to_logger(self, caplog):
        sink = DiagnosticSink()
        with caplog.at_level(logging.WARNING, logger="fnitout.diagnostics"):
            sink.warn(7, "careful")
            sink.report(Diagnostic(8, "stop", Severity.FATAL))
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.WARNING, logging.ERROR]
        assert "7: WARNING: careful" in caplog.text

    def test_custom_logger(self, caplog):
        sink = DiagnosticSink(log=logging.getLogger("custom.sink"))
        with caplog.at_level(logging.WARNING, logger="custom.sink"):
            sink.warn(None, "hello")
        assert caplog.records[0].name == "custom.sink"


class TestFatalLoweringError:
    def test_carries_fatal_diagnostic(self):
        exc = FatalLoweringError(12, "bad needle")
        assert exc.location == 12
        assert exc.diagnostic.severity is Severity.FATAL
        assert str(exc) == "bad needle"
