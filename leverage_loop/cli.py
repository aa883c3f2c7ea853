"""Command-line interface for the leverage loop planner and engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .calculator import max_leverage
from .config import AppConfig, load_config
from .errors import LeverageError
from .logging_setup import configure_logging
from .oracles import PythOracle
from .services import (
    DeleveragePlan,
    LeveragePlan,
    MaxLeveragePlan,
    Planner,
    PositionBalances,
)
from .simulation import SimulationError, build_world
from .simulation.world import OWNER_ADDRESS
from .wad import format_units, format_wad, parse_units, to_wad


def _price_override(text: str) -> tuple[str, str]:
    symbol, sep, value = text.partition("=")
    if not sep or not symbol or not value:
        raise argparse.ArgumentTypeError(f"Expected SYMBOL=PRICE, got {text!r}")
    return symbol, value


def _quote(text: str) -> tuple[str, str]:
    amount_in, sep, amount_out = text.partition(":")
    if not sep or not amount_in or not amount_out:
        raise argparse.ArgumentTypeError(f"Expected IN:OUT, got {text!r}")
    return amount_in, amount_out


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="leverage-loop",
        description="Flashloan leverage / deleverage calculator and engine",
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

    def add_balance_args(cmd: argparse.ArgumentParser, required: bool) -> None:
        cmd.add_argument("--collateral", required=required, help="Collateral asset symbol")
        cmd.add_argument("--debt", required=required, help="Borrowed asset symbol")
        cmd.add_argument(
            "--collateral-balance", default="0", help="Collateral already supplied"
        )
        cmd.add_argument("--debt-balance", default="0", help="Debt already owed")
        cmd.add_argument(
            "--price",
            action="append",
            type=_price_override,
            default=[],
            metavar="SYM=VALUE",
            help="USD price override (repeatable); others come from the oracle",
        )

    def add_position_args(cmd: argparse.ArgumentParser) -> None:
        add_balance_args(cmd, required=True)
        cmd.add_argument(
            "--simulate",
            action="store_true",
            help="Execute the plan against an in-memory pool and venue",
        )

    lev = sub.add_parser("leverage", help="Plan a leverage pass")
    add_position_args(lev)
    lev.add_argument("--add", required=True, help="Collateral to add")
    lev_size = lev.add_mutually_exclusive_group(required=True)
    lev_size.add_argument("--target", help="Target leverage, e.g. 2.5")
    lev_size.add_argument(
        "--quote",
        type=_quote,
        metavar="LOAN:OUT",
        help="Venue quote: LOAN of debt asset converts into OUT collateral",
    )

    delev = sub.add_parser("deleverage", help="Plan a deleverage pass")
    add_position_args(delev)
    delev_size = delev.add_mutually_exclusive_group(required=True)
    delev_size.add_argument(
        "--retain",
        help="Fraction of current debt to keep (0 repays everything)",
    )
    delev_size.add_argument(
        "--quote",
        type=_quote,
        metavar="LOAN:OUT",
        help="Venue quote: LOAN of collateral converts into OUT debt asset",
    )

    max_lev = sub.add_parser(
        "max-leverage",
        help="Show the leverage ceiling, and the reach of one pass for a position",
    )
    add_balance_args(max_lev, required=False)
    max_lev.add_argument("--add", default="0", help="Collateral to add")

    return parser


def _print_leverage(plan: LeveragePlan, config: AppConfig) -> None:
    cd = config.asset(plan.collateral).decimals
    dd = config.asset(plan.debt).decimals
    r = plan.result
    print(f"Loan:               {format_units(r.loan_amount, dd)} {plan.debt}")
    print(f"Swap output:        {format_units(r.swap_amount, cd)} {plan.collateral}")
    print(f"Premium:            {format_units(r.premium, dd)} {plan.debt}")
    print(f"Resulting collateral: {format_units(r.resulting_collateral_amount, cd)}")
    print(f"Resulting debt:     {format_units(r.resulting_debt_amount, dd)}")
    print(f"Resulting LTV:      {format_wad(r.resulting_ltv)}")
    print(f"Within safety policy: {'yes' if plan.valid else 'NO'}")


def _print_deleverage(plan: DeleveragePlan, config: AppConfig) -> None:
    cd = config.asset(plan.collateral).decimals
    dd = config.asset(plan.debt).decimals
    r = plan.result
    print(f"Loan:               {format_units(r.loan_amount, cd)} {plan.collateral}")
    print(f"Repay:              {format_units(r.repay_amount, dd)} {plan.debt}")
    print(f"Withdraw:           {format_units(r.withdraw_amount, cd)} {plan.collateral}")
    print(f"Resulting collateral: {format_units(r.resulting_collateral_amount, cd)}")
    print(f"Resulting debt:     {format_units(r.resulting_debt_amount, dd)}")
    print(f"Resulting LTV:      {format_wad(r.resulting_ltv)}")
    print(f"Below liquidation threshold: {'yes' if plan.valid else 'NO'}")


async def _simulate(
    config: AppConfig,
    planner: Planner,
    plan: LeveragePlan | DeleveragePlan,
    balances: PositionBalances,
) -> None:
    world = build_world(
        config, {plan.collateral: plan.price_collateral, plan.debt: plan.price_debt}
    )
    collateral = config.asset(plan.collateral)
    debt = config.asset(plan.debt)
    world.open_position(
        OWNER_ADDRESS, collateral.address, debt.address, balances.collateral, balances.debt
    )

    if isinstance(plan, LeveragePlan):
        instruction = b""
        if collateral.address != debt.address:
            instruction = world.venue.build_instruction(
                debt.address, collateral.address, plan.result.loan_amount
            )
        world.fund(OWNER_ADDRESS, collateral.address, plan.added_collateral)
        await world.engine.execute_leverage(
            OWNER_ADDRESS, planner.leverage_request(plan, OWNER_ADDRESS, instruction)
        )
    else:
        instruction = b""
        if collateral.address != debt.address:
            instruction = world.venue.build_instruction(
                collateral.address, debt.address, plan.result.loan_amount
            )
        await world.engine.execute_deleverage(
            OWNER_ADDRESS, planner.deleverage_request(plan, OWNER_ADDRESS, instruction)
        )

    supplied, owed = world.position(OWNER_ADDRESS, collateral.address, debt.address)
    account = await world.pool.get_account_data(OWNER_ADDRESS)
    print("Simulated position after the pass:")
    print(f"  Collateral:    {format_units(supplied, collateral.decimals)} {plan.collateral}")
    print(f"  Debt:          {format_units(owed, debt.decimals)} {plan.debt}")
    print(f"  LTV:           {format_wad(account.ltv)}")
    print(f"  Health factor: {format_wad(account.health_factor)}")


def _print_max_leverage(plan: MaxLeveragePlan) -> None:
    if plan.current_leverage is not None:
        print(f"Current leverage:   {format_wad(plan.current_leverage)}x")
    print(
        f"Max collateral multiplier for {plan.collateral}/{plan.debt}: "
        f"{format_wad(plan.max_multiplier)}x"
    )


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command not in ("leverage", "deleverage", "max-leverage"):
        build_parser().print_help()
        sys.exit(1)

    overrides = {symbol: to_wad(value) for symbol, value in args.price}
    planner = Planner(config, PythOracle(config.price_oracle.pyth))

    if args.command == "max-leverage":
        print(f"Max leverage at LTV {format_wad(config.safety.max_ltv)}: "
              f"{format_wad(max_leverage(config.safety.max_ltv))}x")
        if not args.collateral and not args.debt:
            return
        if not (args.collateral and args.debt):
            raise ValueError("--collateral and --debt must be given together")

    collateral = config.asset(args.collateral)
    debt = config.asset(args.debt)
    balances = PositionBalances(
        collateral=parse_units(args.collateral_balance, collateral.decimals),
        debt=parse_units(args.debt_balance, debt.decimals),
    )

    if args.command == "max-leverage":
        _print_max_leverage(
            await planner.plan_max_leverage(
                args.collateral,
                args.debt,
                add=parse_units(args.add, collateral.decimals),
                balances=balances,
                prices=overrides,
            )
        )
        return

    plan: LeveragePlan | DeleveragePlan
    if args.command == "leverage":
        add = parse_units(args.add, collateral.decimals)
        if args.quote:
            loan, quoted_out = args.quote
            plan = planner.plan_leverage_from_quote(
                args.collateral,
                args.debt,
                add=add,
                loan=parse_units(loan, debt.decimals),
                quoted_out=parse_units(quoted_out, collateral.decimals),
                balances=balances,
            )
        else:
            plan = await planner.plan_leverage(
                args.collateral,
                args.debt,
                add=add,
                target=to_wad(args.target),
                balances=balances,
                prices=overrides,
            )
        _print_leverage(plan, config)
    else:
        if args.quote:
            loan, quoted_out = args.quote
            plan = planner.plan_deleverage_from_quote(
                args.collateral,
                args.debt,
                loan=parse_units(loan, collateral.decimals),
                quoted_out=parse_units(quoted_out, debt.decimals),
                balances=balances,
            )
        else:
            plan = await planner.plan_deleverage(
                args.collateral,
                args.debt,
                retain=to_wad(args.retain),
                balances=balances,
                prices=overrides,
            )
        _print_deleverage(plan, config)

    if args.simulate:
        await _simulate(config, planner, plan, balances)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except (LeverageError, SimulationError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
