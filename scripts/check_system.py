"""
System Check Script
Verifies configuration, RPC connection, deployer wallet and recorded contracts

Usage: python -m scripts.check_system --network localhost
"""

import os
import sys
import argparse
from decimal import Decimal
from functools import partial
from loguru import logger

from blockchain.session import NetworkSession
from deployment.manifest import load_manifest
from deployment.records import DeploymentStore
from utils.config_loader import (
    CONFIG_DIR,
    get_artifacts_dir,
    get_deployments_dir,
    get_network_config,
    load_json_config,
    load_token_config,
)
from utils.exceptions import FundOpsError

MIN_DEPLOYER_BALANCE_ETH = Decimal("0.05")


def check_environment_variables(network_config):
    """Check the variables this network needs"""
    logger.info("Checking environment variables...")

    missing = []

    rpc_env = network_config.get('rpc_url_env')
    if rpc_env and not os.getenv(rpc_env):
        if network_config.get('default_rpc_url'):
            logger.info(f"  {rpc_env} not set, using {network_config['default_rpc_url']}")
        else:
            missing.append(rpc_env)

    if not os.getenv('PRIVATE_KEY'):
        if network_config.get('use_node_accounts'):
            logger.info("  PRIVATE_KEY not set, using the node's first account")
        else:
            missing.append('PRIVATE_KEY')

    if not os.getenv('COINGECKO_API_KEY'):
        logger.info("  COINGECKO_API_KEY not set (public rate limits apply)")

    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
        return False

    logger.success("✓ Environment variables set")
    return True


def check_configuration_files():
    """Check that every config file parses"""
    logger.info("Checking configuration files...")

    ok = True

    for name, loader in (("networks.json", partial(load_json_config, "networks.json")),
                         ("tokens.json", load_token_config)):
        try:
            loader()
            logger.success(f"  ✓ config/{name}")
        except FundOpsError as e:
            logger.error(f"  ✗ config/{name}: {e}")
            ok = False

    manifests = sorted((CONFIG_DIR / "manifests").glob("*.json"))
    if not manifests:
        logger.error("  ✗ No manifests in config/manifests")
        ok = False

    for path in manifests:
        try:
            manifest = load_manifest(path)
            logger.success(
                f"  ✓ manifests/{path.name} "
                f"({len(manifest.contracts)} contracts, {len(manifest.steps)} steps)"
            )
        except FundOpsError as e:
            logger.error(f"  ✗ manifests/{path.name}: {e}")
            ok = False

    if ok:
        logger.success("✓ All configuration files valid")
    return ok


def check_directories():
    """Create runtime directories, look for compiled artifacts"""
    logger.info("Checking directories...")

    for dir_path in ('data/logs', str(get_deployments_dir())):
        if not os.path.exists(dir_path):
            os.makedirs(dir_path, exist_ok=True)
            logger.info(f"  Created: {dir_path}")
        else:
            logger.success(f"  ✓ {dir_path}")

    artifacts = get_artifacts_dir()
    if not artifacts.exists():
        logger.warning(f"  ⚠ {artifacts} not found (minimal ABIs only, no deployments)")
        logger.info("  Run: npx hardhat compile")
    else:
        logger.success(f"  ✓ {artifacts}")

    return True


def check_rpc_connection(network_config):
    """Check the network's RPC endpoint"""
    logger.info("Checking RPC connection...")

    session = NetworkSession(network_config['name'], network_config)
    chain_id = session.w3.eth.chain_id
    block = session.w3.eth.block_number

    expected = network_config.get('chain_id')
    if expected is not None and chain_id != expected:
        logger.error(f"  ✗ Chain id {chain_id}, expected {expected}")
        return False

    logger.success(f"  ✓ Connected to chain {chain_id} (Block: {block})")
    return True


def check_wallet_balance(network_config):
    """Check the deployer wallet and its balance"""
    logger.info("Checking deployer balance...")

    session = NetworkSession(network_config['name'], network_config)
    wallet = session.try_wallet()

    if wallet is None:
        logger.error("  ✗ No deployer wallet (set PRIVATE_KEY)")
        return False

    balance = wallet.get_native_balance()
    logger.info(f"  Deployer: {wallet.address}")
    logger.info(f"  Balance: {balance:.4f} ETH")

    if balance < MIN_DEPLOYER_BALANCE_ETH:
        logger.warning(f"  ⚠ Deployer balance low (need at least {MIN_DEPLOYER_BALANCE_ETH} ETH)")
    else:
        logger.success("  ✓ Deployer balance sufficient")

    return True


def check_deployment_record(network):
    """Check that a deployment record exists"""
    logger.info("Checking deployment record...")

    store = DeploymentStore()
    if not store.exists(network):
        logger.warning(f"  No record at {store.path_for(network)}")
        logger.info(f"  Run: python main.py --network {network} deploy")
        return False

    record = store.load(network)
    logger.success(
        f"  ✓ {store.path_for(network)} "
        f"({len(record.contracts)} contracts, {len(record.tokens)} tokens, "
        f"{len(record.steps_completed)} steps completed)"
    )
    return True


def check_contract_code(network_config):
    """Check that every recorded address holds code"""
    logger.info("Checking recorded contracts...")

    store = DeploymentStore()
    if not store.exists(network_config['name']):
        logger.warning("  Nothing recorded yet")
        return False

    record = store.load(network_config['name'])
    session = NetworkSession(network_config['name'], network_config)

    missing = []
    for name, address in record.all_addresses().items():
        if session.contracts.has_code(address):
            logger.success(f"  ✓ {name}: {address}")
        else:
            logger.error(f"  ✗ {name}: no code at {address}")
            missing.append(name)

    if missing:
        logger.error(f"No code for: {', '.join(missing)} (node restarted? redeploy with --fresh)")
        return False

    return True


def run_checks(network: str) -> int:
    """
    Run all system checks for a network

    Args:
        network: Network name from config/networks.json

    Returns:
        0 if every check passed, 1 otherwise
    """
    logger.info("=" * 70)
    logger.info(f"Fund Ops System Check ({network})")
    logger.info("=" * 70)

    network_config = get_network_config(network)

    checks = [
        ("Environment Variables", partial(check_environment_variables, network_config)),
        ("Configuration Files", check_configuration_files),
        ("Directories", check_directories),
        ("RPC Connection", partial(check_rpc_connection, network_config)),
        ("Deployer Balance", partial(check_wallet_balance, network_config)),
        ("Deployment Record", partial(check_deployment_record, network)),
        ("Contract Code", partial(check_contract_code, network_config))
    ]

    results = []

    for name, check_func in checks:
        logger.info("")
        try:
            result = check_func()
            results.append((name, result))
        except Exception as e:
            logger.error(f"Error in {name}: {e}")
            results.append((name, False))

    # Summary
    logger.info("")
    logger.info("=" * 70)
    logger.info("Summary")
    logger.info("=" * 70)

    passed = sum(1 for _, result in results if result)
    total = len(results)

    for name, result in results:
        status = "✓ PASS" if result else "✗ FAIL"
        logger.info(f"  {status}: {name}")

    logger.info("")
    logger.info(f"Total: {passed}/{total} checks passed")

    if passed == total:
        logger.success("=" * 70)
        logger.success("✅ System ready!")
        logger.success("=" * 70)
        return 0
    else:
        logger.error("=" * 70)
        logger.error("❌ System not ready - fix issues above")
        logger.error("=" * 70)
        return 1


def main():
    parser = argparse.ArgumentParser(description="Fund ops system check")
    parser.add_argument("--network", default="localhost")
    args = parser.parse_args()

    return run_checks(args.network)


if __name__ == "__main__":
    sys.exit(main())
