"""Command-line interface for the position guardian."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import load_config
from .logging_setup import configure_logging
from .models import CollateralAnalysis, ProtectionOption, ProtectionResult
from .services import Monitor


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="position-guardian",
        description="Risk monitoring and protection for DeFi lending positions",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("check", help="Single risk check with alerts")
    sub.add_parser("report", help="Generate daily risk report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in seconds (overrides config)",
    )

    options_parser = sub.add_parser("options", help="Show ranked protection options")
    options_parser.add_argument("wallet")
    options_parser.add_argument("protocol")

    protect_parser = sub.add_parser("protect", help="Run protection (honors dry_run)")
    protect_parser.add_argument("wallet")
    protect_parser.add_argument("protocol")

    collateral_parser = sub.add_parser("collateral", help="Collateral yield analysis")
    collateral_parser.add_argument("wallet")
    collateral_parser.add_argument("--protocol", default=None)

    return parser


def format_options(options: list[ProtectionOption]) -> str:
    if not options:
        return "No protection needed."
    lines = []
    for rank, option in enumerate(options, start=1):
        lines.append(
            f"{rank}. {option.action.value:<15} ${option.amount_usd:>12,.2f}  "
            f"HF → {option.resulting_hf:.3f}  "
            f"yield cost ${option.yield_cost_annual_usd:,.2f}/yr"
        )
        lines.append(f"   {option.reason}")
    return "\n".join(lines)


def format_result(result: ProtectionResult) -> str:
    if not result.success:
        return f"Protection failed: {result.error}"
    mode = "DRY RUN" if result.dry_run else f"tx {result.tx_signature}"
    return (
        f"{result.option.action.value} ${result.option.amount_usd:,.2f} ({mode}) "
        f"HF {result.previous_hf:.3f} → {result.new_hf:.3f}"
    )


def format_analysis(analysis: CollateralAnalysis) -> str:
    lines = [
        f"{analysis.protocol.value}: collateral APY "
        f"{analysis.current_yield.weighted_apy * 100:.2f}% → "
        f"{analysis.optimized_yield.weighted_apy * 100:.2f}% "
        f"(+${analysis.total_boost_usd:,.2f}/yr)"
    ]
    for rec in analysis.recommendations:
        line = (
            f"  {rec.from_asset} → {rec.to_asset}: +{rec.yield_boost_absolute_percent:.2f}pp, "
            f"+${rec.annual_gain_usd:,.2f}/yr, HF {rec.health_impact.projected_hf:.3f}"
        )
        if rec.risk_note:
            line += f" ({rec.risk_note})"
        lines.append(line)
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config)

    if args.command == "check":
        await monitor.check_and_alert()
    elif args.command == "report":
        print(await monitor.generate_daily_report())
    elif args.command == "monitor":
        await monitor.run_continuous(args.interval)
    elif args.command == "options":
        evaluated = await monitor.evaluate_protection(args.wallet, args.protocol)
        if evaluated is None:
            print(f"No {args.protocol} position for {args.wallet}")
            return
        options, assessment = evaluated
        print(
            f"Risk: {assessment.risk_level.value} (score {assessment.risk_score}), "
            f"HF {assessment.health_factor:.3f}"
        )
        print(format_options(options))
    elif args.command == "protect":
        result = await monitor.execute_protection(args.wallet, args.protocol)
        if result is None:
            print(f"No {args.protocol} position for {args.wallet}")
            return
        print(format_result(result))
    elif args.command == "collateral":
        analyses = await monitor.analyze_collateral(args.wallet, args.protocol)
        if not analyses:
            print(f"No positions for {args.wallet}")
            return
        for analysis in analyses:
            print(format_analysis(analysis))
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
