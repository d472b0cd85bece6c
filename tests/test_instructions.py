from __future__ import annotations

from cutover_engine.domain.dns import DNSChange
from cutover_engine.domain.health import new_http_health_check, new_tcp_health_check
from cutover_engine.domain.plan import CutoverPlan
from cutover_engine.engine.instructions import render_manual_instructions


def test_manual_instructions_layout() -> None:
    plan = CutoverPlan(id="p1", bundle_id="b1", dns_propagation_wait_seconds=300)
    plan.add_pre_check(new_http_health_check("pre", "Target healthy", "https://new.example.com"))
    plan.add_dns_change(
        DNSChange(id="a", domain="example.com", record_type="A", old_value="1.1.1.1", new_value="2.2.2.2")
    )
    plan.add_dns_change(
        DNSChange(
            id="b",
            domain="example.com",
            name="www",
            record_type="CNAME",
            old_value="old.example.net",
            new_value="new.example.net",
            provider="cloudflare",
        )
    )
    plan.add_post_check(new_tcp_health_check("post", "Port open", "example.com:443"))

    lines = render_manual_instructions(plan)

    assert lines[0] == "=== MANUAL CUTOVER INSTRUCTIONS ==="
    assert lines[2:8] == [
        "## Pre-Cutover Checks",
        "",
        "1. Target healthy",
        "   Type: http",
        "   Endpoint: https://new.example.com",
        "   Expected Status: 200",
    ]
    assert "1. Update A record for example.com" in lines
    assert "   TTL: 300 seconds" in lines
    assert "   Provider: cloudflare" in lines
    assert lines.count("   Provider: cloudflare") == 1
    assert "Wait 5m0s for DNS propagation before proceeding." in lines
    assert "You can verify propagation using: dig +short <domain>" in lines
    assert "## Post-Cutover Validation" in lines

    rollback = lines[lines.index("## Rollback Instructions") :]
    assert rollback[2:] == [
        "If issues occur, revert DNS changes:",
        "1. Revert CNAME record for www.example.com to: old.example.net",
        "2. Revert A record for example.com to: 1.1.1.1",
    ]


def test_manual_instructions_skip_empty_sections() -> None:
    plan = CutoverPlan(id="p1", bundle_id="b1", dns_propagation_wait_seconds=0)
    lines = render_manual_instructions(plan)

    assert "## Pre-Cutover Checks" not in lines
    assert "## DNS Changes" not in lines
    assert "Wait 0s for DNS propagation before proceeding." in lines
    assert lines[-1] == "If issues occur, revert DNS changes:"
