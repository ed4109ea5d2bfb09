# tests/application/test_http_trace.py
from application.http_trace import MAX_AUDIT_BODY_LENGTH, AuditContext, trim_audit_body


class TestAuditContext:
    def test_label_with_scenario(self):
        ctx = AuditContext(context="scenario request", scenario_idx=2, scenario_action="complete", scenario_description="pay")
        assert ctx.label() == "scenario request | scenario #3 | complete | pay"

    def test_label_without_scenario(self):
        assert AuditContext(context="relay").label() == "relay"


class TestTrimAuditBody:
    def test_short_body_unchanged(self):
        assert trim_audit_body('{"error": 0}') == '{"error": 0}'

    def test_empty_body(self):
        assert trim_audit_body("") == ""

    def test_long_body_is_truncated(self):
        body = "a" * (MAX_AUDIT_BODY_LENGTH + 10)
        trimmed = trim_audit_body(body)
        assert trimmed.startswith("a" * MAX_AUDIT_BODY_LENGTH)
        assert trimmed.endswith("...[truncated 10 chars]")
