"""
Fund Deployment Script
Shows the deployer balance and estimated cost, then runs a manifest

Usage: python -m scripts.deploy_fund --network sepolia --manifest fixed-rate-fund
"""

import sys
import argparse
from decimal import Decimal
from loguru import logger

from blockchain.session import NetworkSession
from deployment.manifest import Manifest, load_manifest
from deployment.records import DeploymentStore
from deployment.runner import DeploymentRunner
from utils.config_loader import get_manifest_path, load_token_config
from utils.exceptions import FundOpsError, InsufficientFundsError


def pending_contracts(session: NetworkSession, manifest: Manifest, store: DeploymentStore, fresh: bool = False):
    """Manifest contracts that would be deployed (not recorded, or no code on-chain)"""
    if fresh or not store.exists(session.network):
        return [spec.name for spec in manifest.contracts]

    record = store.load(session.network)
    return [
        spec.name for spec in manifest.contracts
        if not session.contracts.has_code(record.get(spec.name))
    ]


def estimate_deployment_cost(session: NetworkSession, contract_count: int) -> Decimal:
    """
    Upper-bound deployment cost in ETH

    Constructor arguments reference contracts that do not exist yet,
    so each deployment is priced at the configured default gas limit.
    """
    gas_calculator = session.tx_builder.gas_calculator
    fee_params = gas_calculator.get_fee_params()
    return gas_calculator.estimate_cost_eth(gas_calculator.default_gas_limit * contract_count, fee_params)


def confirm_deployment(session: NetworkSession, manifest: Manifest, store: DeploymentStore, fresh: bool = False) -> bool:
    """
    Print balance and estimated cost, then ask for confirmation

    Returns:
        True if the user confirmed (or nothing needs deploying)

    Raises:
        InsufficientFundsError: If the deployer cannot cover the estimate
    """
    wallet = session.wallet
    pending = pending_contracts(session, manifest, store, fresh)

    logger.info(f"Deploying from: {wallet.address}")
    balance = wallet.get_native_balance()
    logger.info(f"Account balance: {balance:.4f} ETH")

    if not pending:
        logger.info("All contracts already deployed - only pending steps will run")
        return True

    logger.info(f"Contracts to deploy ({len(pending)}): {', '.join(pending)}")
    cost = estimate_deployment_cost(session, len(pending))
    logger.info(f"Estimated deployment cost (upper bound): {cost:.6f} ETH")

    if balance < cost:
        raise InsufficientFundsError(
            f"Deployer balance {balance:.6f} ETH below estimated cost {cost:.6f} ETH"
        )

    confirm = input("\nProceed with deployment? (yes/no): ")

    if confirm.lower() != 'yes':
        logger.info("Deployment cancelled")
        return False

    return True


def deploy_fund(network: str, manifest_name: str, fresh: bool = False) -> int:
    """Interactive deployment of one manifest"""
    logger.info("Starting fund deployment...")

    manifest = load_manifest(get_manifest_path(manifest_name))
    session = NetworkSession(network)
    store = DeploymentStore()

    if not confirm_deployment(session, manifest, store, fresh):
        return 1

    runner = DeploymentRunner(
        session.config,
        session.contracts,
        session.tx_builder,
        store=store,
        token_config=load_token_config()
    )
    runner.run(manifest, fresh=fresh)

    logger.success("✅ Fund deployed successfully!")
    logger.success(f"Record: {store.path_for(network)}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Deploy the mock fund")
    parser.add_argument("--network", default="localhost")
    parser.add_argument("--manifest", default="fixed-rate-fund")
    parser.add_argument("--fresh", action="store_true", help="Redeploy everything")
    args = parser.parse_args()

    try:
        return deploy_fund(args.network, args.manifest, args.fresh)
    except FundOpsError as e:
        logger.error(f"❌ Deployment failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
