"""
Deployment Runner
Executes a manifest idempotently against one network
"""

from typing import Any, Dict, Optional, Set
from loguru import logger

from .manifest import Manifest, ContractSpec, StepSpec, resolve_args, resolve_order, resolve_value
from .records import DeploymentRecord, DeploymentStore
from fund.faucet import TokenFaucet
from utils.units import format_units, parse_units

DEFAULT_USDC_CHUNK = 100_000 * 10**6


class DeploymentRunner:
    """
    Deploys missing contracts and runs pending setup steps

    Contracts already in the record with code on-chain are reused.
    Steps are skipped when already completed or when their guard
    view-call shows the work is done. The record is saved after every
    deployment and every step, so an interrupted run can be resumed.
    """

    def __init__(
        self,
        network_config: Dict,
        contract_manager,
        tx_builder,
        store: Optional[DeploymentStore] = None,
        token_config: Optional[Dict] = None
    ):
        """
        Initialize Deployment Runner

        Args:
            network_config: Network config (name, chain_id, chainlink_feeds)
            contract_manager: ContractManager for artifacts and instances
            tx_builder: TransactionBuilder for the deployer wallet
            store: Record store (default deployments dir if None)
            token_config: Token catalogue from config/tokens.json
        """
        self.network = network_config['name']
        self.chain_id = network_config.get('chain_id')
        self.feeds = network_config.get('chainlink_feeds') or {}
        self.contract_manager = contract_manager
        self.tx_builder = tx_builder
        self.store = store or DeploymentStore()
        self.token_config = token_config or {}
        self.faucet = TokenFaucet(contract_manager, tx_builder)

        self.stats = {'deployed': 0, 'reused': 0, 'steps_run': 0, 'steps_skipped': 0}

    @property
    def deployer(self) -> str:
        return self.tx_builder.sender

    def run(self, manifest: Manifest, fresh: bool = False, dry_run: bool = False) -> DeploymentRecord:
        """
        Execute a manifest

        Args:
            manifest: Parsed manifest
            fresh: Ignore recorded contracts and steps, deploy everything again
            dry_run: Log the plan without sending transactions

        Returns:
            The updated deployment record
        """
        logger.info("=" * 70)
        logger.info(f"DEPLOYING '{manifest.name}' TO {self.network.upper()}")
        logger.info("=" * 70)
        if manifest.description:
            logger.info(manifest.description)
        logger.info(f"Deployer: {self.deployer}")
        if dry_run:
            logger.warning("Dry run - no transactions will be sent")

        record = self.store.load_or_create(self.network, self.chain_id)
        if fresh:
            logger.warning("Fresh deployment - ignoring recorded contracts and steps")
            record.reset()

        record.chain_id = self.chain_id
        record.manifest = manifest.name
        record.deployer = self.deployer
        if 'management_fee_bps' in manifest.fund:
            record.fee_config['managementFeeBps'] = manifest.fund['management_fee_bps']

        ordered = resolve_order(manifest.contracts)

        logger.info("")
        logger.info(f"📦 Contracts ({len(ordered)})")
        deployed_now = set()
        for spec in ordered:
            if self._ensure_contract(spec, record, dry_run):
                deployed_now.add(spec.name)
                deployed_now.update(spec.outputs)

        if deployed_now and not dry_run:
            self._reopen_steps(manifest, record, deployed_now)

        logger.info("")
        logger.info(f"🔧 Setup steps ({len(manifest.steps)})")
        for step in manifest.steps:
            self._run_step(step, manifest, record, dry_run)

        self._print_summary(record, dry_run)
        return record

    def _lookup(self, record: DeploymentRecord, dry_run: bool):
        """Name -> address resolver (placeholders for undeployed contracts in dry runs)"""
        if dry_run:
            return lambda name: record.get(name) or f"<{name}>"
        return record.address_of

    def _ensure_contract(self, spec: ContractSpec, record: DeploymentRecord, dry_run: bool) -> bool:
        """Reuse a recorded contract or deploy it; True if a new instance was deployed"""
        existing = record.contracts.get(spec.name)

        if existing and self.contract_manager.has_code(existing):
            logger.info(f"  ↺ {spec.name} reused at {existing}")
            self.stats['reused'] += 1
            if spec.token:
                record.tokens[spec.token] = existing
            self._resolve_outputs(spec, existing, record, dry_run)
            return False

        if existing:
            logger.warning(f"  {spec.name} recorded at {existing} has no code on {self.network}, redeploying")

        args = resolve_args(spec.args, self._lookup(record, dry_run), self.deployer, self.feeds)

        if dry_run:
            logger.info(f"  → would deploy {spec.name} ({spec.artifact}) with args {args}")
            return False

        logger.info(f"  Deploying {spec.name}...")
        contract, receipt = self.contract_manager.deploy(spec.artifact, args, self.tx_builder)

        record.set_contract(spec.name, contract.address, token_symbol=spec.token, gas_used=receipt['gasUsed'])
        self.store.save(record)
        self.stats['deployed'] += 1

        self._resolve_outputs(spec, contract.address, record, dry_run)
        return True

    def _reopen_steps(self, manifest: Manifest, record: DeploymentRecord, deployed: Set[str]):
        """Completed steps that touch a newly deployed contract must run again"""
        reopened = [
            step.id for step in manifest.steps
            if record.is_step_completed(step.id) and step.referenced_names() & deployed
        ]
        if not reopened:
            return

        for step_id in reopened:
            record.unmark_step(step_id)
        self.store.save(record)
        logger.warning(f"  Redeployed {', '.join(sorted(deployed))}, rerunning steps: {', '.join(reopened)}")

    def _resolve_outputs(self, spec: ContractSpec, address: str, record: DeploymentRecord, dry_run: bool):
        """Record addresses returned by zero-arg views (e.g. the fund's share token)"""
        if not spec.outputs:
            return

        contract = self.contract_manager.attach(spec.artifact, address)
        changed = False

        for output_name, function_name in spec.outputs.items():
            output_address = getattr(contract.functions, function_name)().call()
            if record.contracts.get(output_name) != output_address:
                record.set_contract(output_name, output_address)
                changed = True
            logger.info(f"    {output_name}: {output_address}")

        if changed and not dry_run:
            self.store.save(record)

    def _artifact_for(self, manifest: Manifest, name: str) -> str:
        """ABI source for a step target (output names use their own name)"""
        for spec in manifest.contracts:
            if spec.name == name:
                return spec.artifact
        return name

    def _guard_satisfied(self, step: StepSpec, contract, record: DeploymentRecord) -> bool:
        """Evaluate a step's skip_when view-call"""
        guard = step.skip_when
        lookup = self._lookup(record, False)

        args = resolve_args(guard.get('args', []), lookup, self.deployer, self.feeds)
        result = getattr(contract.functions, guard['function'])(*args).call()

        if 'equals' in guard:
            expected = resolve_value(guard['equals'], lookup, self.deployer, self.feeds)
            return _same(result, expected)

        expected = resolve_value(guard['not_equals'], lookup, self.deployer, self.feeds)
        return not _same(result, expected)

    def _run_step(self, step: StepSpec, manifest: Manifest, record: DeploymentRecord, dry_run: bool):
        """Run one setup step unless it is done or filtered out"""
        label = step.description or f"{step.contract}.{step.function}"

        if not step.applies_to(self.network):
            logger.debug(f"  - {step.id}: not for {self.network}")
            return

        if record.is_step_completed(step.id):
            logger.info(f"  ✓ {step.id}: already completed")
            self.stats['steps_skipped'] += 1
            return

        target = record.get(step.contract)
        contract = None
        if target is not None:
            contract = self.contract_manager.attach(self._artifact_for(manifest, step.contract), target)

        if step.skip_when and contract is not None and self._guard_satisfied(step, contract, record):
            logger.info(f"  ✓ {step.id}: {step.skip_when['function']}() shows it is done, skipping")
            self.stats['steps_skipped'] += 1
            if not dry_run:
                record.mark_step(step.id)
                self.store.save(record)
            return

        args = resolve_args(step.args, self._lookup(record, dry_run), self.deployer, self.feeds)

        if dry_run:
            logger.info(f"  → would run {step.id}: {label}{tuple(args)}")
            return

        logger.info(f"  Running {step.id}: {label}")

        if step.action == 'mint':
            self._mint(record, target, args)
        elif step.action == 'initialize_fund':
            self._initialize_fund(step, contract, args)
        else:
            function = getattr(contract.functions, step.function)
            self.tx_builder.transact(function(*args), f"{step.id}: {label}")

        record.mark_step(step.id)
        self.store.save(record)
        self.stats['steps_run'] += 1
        logger.success(f"  ✓ {step.id} done")

    def _token_info(self, record: DeploymentRecord, address: str) -> Dict[str, Any]:
        """Symbol and decimals for a recorded token address"""
        catalogue = self.token_config.get('tokens', {})
        for symbol, token_address in record.tokens.items():
            if token_address == address:
                return {'symbol': symbol, 'decimals': catalogue.get(symbol, {}).get('decimals', 18)}
        return {'symbol': 'tokens', 'decimals': 18}

    def _mint(self, record: DeploymentRecord, token_address: str, args):
        recipient, amount = args
        info = self._token_info(record, token_address)
        self.faucet.mint(token_address, recipient, amount, info['symbol'], info['decimals'])

    def _initialize_fund(self, step: StepSpec, fund, args):
        """Fund the deployer with USDC, approve the fund, call initializeFund"""
        usdc_address, amount = args

        usdc_config = self.token_config.get('tokens', {}).get('USDC', {})
        chunk = DEFAULT_USDC_CHUNK
        if usdc_config.get('faucet_chunk'):
            chunk = parse_units(usdc_config['faucet_chunk'], 6)

        amount = self.faucet.ensure_balance(usdc_address, amount, chunk=chunk, symbol="USDC", decimals=6)

        usdc = self.contract_manager.erc20(usdc_address)
        self.tx_builder.transact(
            usdc.functions.approve(fund.address, amount),
            f"Approve {format_units(amount, 6)} USDC for the fund"
        )
        logger.success(f"✓ Approved {format_units(amount, 6)} USDC")

        self.tx_builder.transact(
            getattr(fund.functions, step.function)(amount),
            f"Initialize fund with {format_units(amount, 6)} USDC"
        )
        logger.success(f"✅ Fund initialized with {format_units(amount, 6)} USDC")

    def _print_summary(self, record: DeploymentRecord, dry_run: bool):
        logger.info("")
        logger.info("=" * 70)
        logger.info("DEPLOYMENT SUMMARY" + (" (DRY RUN)" if dry_run else ""))
        logger.info("=" * 70)
        logger.info(f"Network: {self.network} (chain {self.chain_id})")
        for name, address in record.contracts.items():
            logger.info(f"  {name:<30} {address}")
        logger.info(
            f"Deployed: {self.stats['deployed']} | Reused: {self.stats['reused']} | "
            f"Steps run: {self.stats['steps_run']} | Steps skipped: {self.stats['steps_skipped']}"
        )
        if not dry_run:
            logger.success(f"✅ Record saved to {self.store.path_for(self.network)}")
        logger.info("=" * 70)


def _same(result: Any, expected: Any) -> bool:
    """Compare a view-call result with a manifest value (addresses case-insensitively)"""
    if isinstance(result, str) and isinstance(expected, str):
        return result.lower() == expected.lower()
    return result == expected
