"""
Fund Ops - Main Entry Point
Deploy, inspect and exercise the mock tokenized fund
"""

import sys
import argparse
from fractions import Fraction
from pathlib import Path
from loguru import logger

from blockchain.session import NetworkSession
from deployment import DeploymentRunner, DeploymentStore, load_manifest
from fund import (
    FixedRateConfigurator,
    FundInspector,
    InvestRedeemExercise,
    PriceChecker,
    ReferencePriceClient,
    TokenFaucet,
)
from fund.fixed_point import DEFAULT_TOTAL_USDC, USDC_DECIMALS, spot_check
from scripts.check_system import run_checks
from scripts.deploy_fund import confirm_deployment
from utils.address_export import FORMATS, export_addresses
from utils.config_loader import get_manifest_path, get_token_config, load_token_config
from utils.exceptions import FundOpsError
from utils.units import format_units, parse_units

LOG_FILE = "data/logs/fund_ops.log"


def setup_logging(level: str = "INFO"):
    """Coloured stderr sink plus a rotating DEBUG file"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level
    )
    logger.add(
        LOG_FILE,
        rotation="1 day",
        retention="7 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        level="DEBUG"
    )


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_deploy(args) -> int:
    manifest = load_manifest(get_manifest_path(args.manifest))
    session = NetworkSession(args.network)
    store = DeploymentStore()

    # Node accounts mean a local chain; nothing real to spend
    needs_confirm = not (args.yes or args.dry_run or session.config.get('use_node_accounts'))
    if needs_confirm and not confirm_deployment(session, manifest, store, args.fresh):
        return 1

    runner = DeploymentRunner(
        session.config,
        session.contracts,
        session.tx_builder,
        store=store,
        token_config=load_token_config()
    )
    record = runner.run(manifest, fresh=args.fresh, dry_run=args.dry_run)

    if not args.dry_run and session.config.get('block_explorer_url'):
        logger.info("Explorer links:")
        for name, address in record.contracts.items():
            logger.info(f"  {name:<28} {session.rpc.explorer_address_url(address)}")
    return 0


def cmd_status(args) -> int:
    session = NetworkSession(args.network)
    record = DeploymentStore().load(args.network)

    account = args.account
    if account is None:
        wallet = session.try_wallet()
        account = wallet.address if wallet else None

    inspector = FundInspector(session.contracts, record, load_token_config())
    status = inspector.inspect(account)
    inspector.log_status(status)
    return 0


def cmd_prices(args) -> int:
    session = NetworkSession(args.network)
    record = DeploymentStore().load(args.network)

    checker = PriceChecker(session.contracts, record, session.config)
    report = checker.scan()
    checker.log_report(report)

    if args.compare:
        oracle_prices = {p.symbol: p.price_usd for p in report.prices if p.error is None}
        client = ReferencePriceClient(load_token_config())
        reference = client.get_reference_prices(list(oracle_prices))
        client.log_comparison(client.compare(oracle_prices, reference))

    return 0


def cmd_fixed_rates(args) -> int:
    session = NetworkSession(args.network)
    record = DeploymentStore().load(args.network)

    configurator = FixedRateConfigurator(
        session.contracts,
        session.tx_builder if args.apply else None,
        record,
        load_token_config()
    )

    if args.from_oracle:
        targets = configurator.rates_from_oracle(PriceChecker(session.contracts, record, session.config))
    else:
        targets = configurator.configured_rates()

    report = configurator.apply(targets) if args.apply else configurator.check(targets)
    configurator.log_report(report)

    if not args.apply and not report.up_to_date:
        logger.info("Run with --apply to set the pending rates")
    return 0


def cmd_mint(args) -> int:
    session = NetworkSession(args.network)
    record = DeploymentStore().load(args.network)

    token = get_token_config(args.token)
    symbol, decimals = token['symbol'], token['decimals']

    amount_text = args.amount or token.get('faucet_amount')
    if amount_text is None:
        raise FundOpsError(f"No --amount given and no faucet_amount configured for {symbol}")

    token_address = record.address_of(symbol)
    faucet = TokenFaucet(session.contracts, session.tx_builder)
    recipient = args.to or faucet.deployer
    faucet.mint(token_address, recipient, parse_units(amount_text, decimals), symbol, decimals)

    balance = session.wallet.get_token_balance_units(token_address, decimals, recipient)
    logger.info(f"{recipient} now holds {balance} {symbol}")
    return 0


def cmd_invest_redeem(args) -> int:
    session = NetworkSession(args.network)
    record = DeploymentStore().load(args.network)

    exercise = InvestRedeemExercise(session.contracts, session.tx_builder, record)
    report = exercise.run(parse_units(args.amount, USDC_DECIMALS), Fraction(args.redeem_fraction))
    exercise.log_report(report)
    return 0 if report.passed else 1


def cmd_calc(args) -> int:
    token_config = load_token_config()
    stablecoin = token_config.get('stablecoin', 'USDC')
    rates = {
        symbol: (token['fixed_rate_usdc'], token['decimals'])
        for symbol, token in token_config.get('tokens', {}).items()
        if symbol != stablecoin and token.get('fixed_rate_usdc') is not None
    }

    total = parse_units(args.total_usdc, USDC_DECIMALS) if args.total_usdc else DEFAULT_TOTAL_USDC
    rows = spot_check(total, rates)

    logger.info("=" * 70)
    logger.info(f"INITIAL ALLOCATION SPOT CHECK ({format_units(total, USDC_DECIMALS)} USDC)")
    logger.info("=" * 70)

    for row in rows:
        marker = "✓" if row.matches else "❌"
        logger.info(
            f"{marker} {row.symbol:<6} {format_units(row.usdc_allocated, USDC_DECIMALS)} USDC "
            f"@ {format_units(row.fixed_rate, USDC_DECIMALS)} -> {format_units(row.token_amount, row.decimals)} "
            f"(ratio {row.ratio}, fund balance {format_units(row.fund_balance, row.decimals)})"
        )
        if not row.amount_matches:
            logger.error(
                f"  token amount {row.token_amount} != Decimal result {row.expected_token_amount}"
            )
        if not row.balance_matches:
            logger.error(f"  ratio does not reconstruct the scaled amount {row.scaled_amount}")

    logger.info("=" * 70)
    mismatches = [row.symbol for row in rows if not row.matches]
    if mismatches:
        logger.error(f"❌ Mismatch for: {', '.join(mismatches)}")
        return 1

    logger.success("✅ Integer math matches Decimal math for every token")
    return 0


def cmd_record(args) -> int:
    store = DeploymentStore()

    if args.record_command == "show":
        record = store.load(args.network)
        logger.info("=" * 70)
        logger.info(f"DEPLOYMENT RECORD: {store.path_for(args.network)}")
        logger.info("=" * 70)
        logger.info(f"Network:  {record.network} (chain {record.chain_id})")
        logger.info(f"Deployer: {record.deployer}")
        logger.info(f"Updated:  {record.timestamp}")
        logger.info(f"Manifest: {record.manifest}")
        for name, address in record.contracts.items():
            gas = record.gas_used.get(name)
            logger.info(f"  {name:<28} {address}" + (f"  (gas {gas})" if gas else ""))
        for symbol, address in record.tokens.items():
            logger.info(f"  token {symbol:<22} {address}")
        if record.steps_completed:
            logger.info(f"Steps completed: {', '.join(record.steps_completed)}")
        return 0

    if args.record_command == "patch":
        addresses = {}
        for item in args.entries:
            name, sep, address = item.partition("=")
            if not sep or not name or not address:
                raise FundOpsError(f"Expected NAME=ADDRESS, got '{item}'")
            addresses[name] = address
        store.patch(args.network, addresses)
        return 0

    record = store.import_file(Path(args.file), args.network)
    logger.success(f"✓ Imported {len(record.all_addresses())} address(es) for {record.network}")
    return 0


def cmd_export_addresses(args) -> int:
    record = DeploymentStore().load(args.network)
    content = export_addresses(record, args.format, Path(args.out) if args.out else None)
    if not args.out:
        print(content, end="")
    return 0


def cmd_check(args) -> int:
    return run_checks(args.network)


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Deploy, inspect and exercise the mock tokenized fund"
    )
    parser.add_argument("--network", default="localhost", help="Network from config/networks.json")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    commands = parser.add_subparsers(dest="command", required=True)

    deploy = commands.add_parser("deploy", help="Run a deployment manifest")
    deploy.add_argument("--manifest", default="fixed-rate-fund", help="Manifest name or path")
    deploy.add_argument("--fresh", action="store_true", help="Ignore the existing record")
    deploy.add_argument("--dry-run", action="store_true", help="Log the plan only")
    deploy.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    deploy.set_defaults(handler=cmd_deploy)

    status = commands.add_parser("status", help="Inspect the deployed fund")
    status.add_argument("--account", help="Account for balance/allowance reads")
    status.set_defaults(handler=cmd_status)

    prices = commands.add_parser("prices", help="Scan oracle and aggregator prices")
    prices.add_argument("--compare", action="store_true", help="Compare against CoinGecko")
    prices.set_defaults(handler=cmd_prices)

    fixed_rates = commands.add_parser("fixed-rates", help="Check or set integration fixed rates")
    fixed_rates.add_argument("--apply", action="store_true", help="Send the rate changes")
    fixed_rates.add_argument("--from-oracle", action="store_true", help="Target oracle prices instead of tokens.json")
    fixed_rates.set_defaults(handler=cmd_fixed_rates)

    mint = commands.add_parser("mint", help="Mint mock tokens")
    mint.add_argument("--token", required=True, help="Token symbol (e.g. USDC)")
    mint.add_argument("--amount", help="Whole tokens (default: faucet_amount)")
    mint.add_argument("--to", help="Recipient (default: deployer)")
    mint.set_defaults(handler=cmd_mint)

    invest = commands.add_parser("invest-redeem", help="Invest then redeem part of the shares")
    invest.add_argument("--amount", default="1000", help="USDC to invest")
    invest.add_argument("--redeem-fraction", default="1/2", help="Share of received MFC to redeem")
    invest.set_defaults(handler=cmd_invest_redeem)

    calc = commands.add_parser("calc", help="Offline fixed-point spot check")
    calc.add_argument("--total-usdc", help="Initial deposit in USDC")
    calc.set_defaults(handler=cmd_calc)

    record = commands.add_parser("record", help="Deployment record maintenance")
    record_commands = record.add_subparsers(dest="record_command", required=True)
    record_commands.add_parser("show", help="Print the record")
    patch = record_commands.add_parser("patch", help="Record addresses by hand")
    patch.add_argument("entries", nargs="+", metavar="NAME=ADDRESS")
    import_ = record_commands.add_parser("import", help="Import a legacy record file")
    import_.add_argument("file")
    record.set_defaults(handler=cmd_record)

    export = commands.add_parser("export-addresses", help="Export addresses for the frontend")
    export.add_argument("--format", default="ts", choices=FORMATS)
    export.add_argument("--out", help="Output file (stdout if omitted)")
    export.set_defaults(handler=cmd_export_addresses)

    check = commands.add_parser("check", help="System check")
    check.set_defaults(handler=cmd_check)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        return args.handler(args)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 1
    except FundOpsError as e:
        logger.error(f"❌ {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
