"""Message rendering for alert sinks — plain text with emoji headers."""
from __future__ import annotations

from datetime import datetime

from ..models import AlertEvent, AlertType, ProtectionResult

_ALERT_HEADERS = {
    AlertType.WARNING: "⚠️ WARNING",
    AlertType.CRITICAL: "🚨 CRITICAL",
    AlertType.LIQUIDATED: "💀 LIQUIDATED",
}


def format_wallet(address: str) -> str:
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address


def format_timestamp(event_time: datetime) -> str:
    return event_time.strftime("%Y-%m-%d %H:%M:%S")


def alert_subject(event: AlertEvent) -> str:
    return f"{_ALERT_HEADERS[event.type]}: {event.protocol.value} HF {event.health_factor:.3f}"


def format_alert(event: AlertEvent) -> str:
    return (
        f"{_ALERT_HEADERS[event.type]} — score {event.risk_score}\n"
        f"\n"
        f"{event.protocol.value} · HF {event.health_factor:.3f}\n"
        f"\n"
        f"{event.message}\n"
        f"\n"
        f"Wallet: {format_wallet(event.wallet)}\n"
        f"{format_timestamp(event.timestamp)} UTC"
    )


def protection_subject(result: ProtectionResult) -> str:
    status = "✅" if result.success else "❌"
    return f"{status} Protection {result.option.action.value} on {result.option.protocol.value}"


def format_protection(result: ProtectionResult) -> str:
    option = result.option
    if result.success:
        mode = "DRY RUN" if result.dry_run else "EXECUTED"
        header = f"🛡️ Protection {mode}"
    else:
        header = "❌ Protection FAILED"

    lines = [
        header,
        "",
        f"{option.action.value} on {option.protocol.value} · ${option.amount_usd:,.2f}",
    ]
    if result.new_hf is not None:
        lines.append(f"HF: {result.previous_hf:.3f} → {result.new_hf:.3f}")
    else:
        lines.append(f"HF: {result.previous_hf:.3f}")
    lines.append(f"Yield cost: ${option.yield_cost_annual_usd:,.2f}/yr")
    if result.tx_signature:
        lines.append(f"Tx: {result.tx_signature}")
    if result.error:
        lines.append(f"Error: {result.error}")
    lines += [
        "",
        f"Wallet: {format_wallet(result.wallet)}",
        f"{format_timestamp(result.timestamp)} UTC",
    ]
    return "\n".join(lines)
