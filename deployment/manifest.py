"""
Deployment Manifest
Declarative contract list, constructor args and post-deploy setup steps
"""

import re
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from utils.exceptions import ManifestError
from utils.units import parse_units

REF_PATTERN = re.compile(r"^\$\{([^}]+)\}$")

DEPLOYER_REF = "deployer"
FEED_PREFIX = "feed:"

ACTIONS = ("call", "mint", "initialize_fund")


@dataclass
class ContractSpec:
    """A contract to deploy"""

    name: str
    artifact: str
    args: List[Any] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)  # record name -> zero-arg view
    token: Optional[str] = None


@dataclass
class StepSpec:
    """A post-deploy setup transaction"""

    id: str
    contract: str
    function: str
    args: List[Any] = field(default_factory=list)
    action: str = "call"
    skip_when: Optional[Dict[str, Any]] = None
    networks: Optional[List[str]] = None
    description: Optional[str] = None

    def applies_to(self, network: str) -> bool:
        return not self.networks or network in self.networks

    def referenced_names(self) -> Set[str]:
        """Target contract plus every contract named in the call or guard args"""
        names = {self.contract} | references(self.args)
        if self.skip_when:
            names |= references(self.skip_when.get("args", []))
        return names


@dataclass
class Manifest:
    """Parsed deployment manifest"""

    name: str
    contracts: List[ContractSpec]
    steps: List[StepSpec]
    description: str = ""
    fund: Dict[str, Any] = field(default_factory=dict)

    def contract(self, name: str) -> ContractSpec:
        for spec in self.contracts:
            if spec.name == name:
                return spec
        raise ManifestError(f"Manifest '{self.name}' has no contract named {name}")

    def known_names(self) -> Set[str]:
        """Contract names plus output names"""
        names = {spec.name for spec in self.contracts}
        for spec in self.contracts:
            names.update(spec.outputs)
        return names

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        """
        Build and validate a manifest from parsed JSON

        Raises:
            ManifestError: On missing fields, duplicates, unknown references or cycles
        """
        if not isinstance(data, dict) or "name" not in data:
            raise ManifestError("Manifest must be a JSON object with a 'name'")

        contracts = []
        for entry in data.get("contracts", []):
            try:
                contracts.append(ContractSpec(
                    name=entry["name"],
                    artifact=entry.get("artifact", entry["name"]),
                    args=list(entry.get("args", [])),
                    outputs=dict(entry.get("outputs", {})),
                    token=entry.get("token"),
                ))
            except (KeyError, TypeError) as e:
                raise ManifestError(f"Invalid contract entry {entry!r}: {e}") from e

        steps = []
        for entry in data.get("steps", []):
            action = entry.get("action", "call")
            if action not in ACTIONS:
                raise ManifestError(f"Step {entry.get('id')!r} has unknown action '{action}'")

            function = entry.get("function")
            if function is None:
                function = {"mint": "mint", "initialize_fund": "initializeFund"}.get(action)

            try:
                steps.append(StepSpec(
                    id=entry["id"],
                    contract=entry["contract"],
                    function=function,
                    args=list(entry.get("args", [])),
                    action=action,
                    skip_when=entry.get("skip_when"),
                    networks=entry.get("networks"),
                    description=entry.get("description"),
                ))
            except (KeyError, TypeError) as e:
                raise ManifestError(f"Invalid step entry {entry!r}: {e}") from e

            if function is None:
                raise ManifestError(f"Step '{entry['id']}' needs a 'function'")

        manifest = cls(
            name=data["name"],
            contracts=contracts,
            steps=steps,
            description=data.get("description", ""),
            fund=dict(data.get("fund", {})),
        )
        manifest.validate()
        return manifest

    def validate(self):
        """Check names, references and ordering"""
        seen = set()
        for spec in self.contracts:
            if spec.name in seen:
                raise ManifestError(f"Duplicate contract name '{spec.name}'")
            seen.add(spec.name)

        step_ids = set()
        known = self.known_names()
        for step in self.steps:
            if step.id in step_ids:
                raise ManifestError(f"Duplicate step id '{step.id}'")
            step_ids.add(step.id)

            if step.contract not in known:
                raise ManifestError(f"Step '{step.id}' targets unknown contract '{step.contract}'")

            guard_args = (step.skip_when or {}).get("args", [])
            unknown = (references(step.args) | references(guard_args)) - known
            if unknown:
                raise ManifestError(f"Step '{step.id}' references unknown contract(s): {', '.join(sorted(unknown))}")

            if step.skip_when is not None:
                if "function" not in step.skip_when:
                    raise ManifestError(f"Step '{step.id}': skip_when needs a 'function'")
                if "equals" not in step.skip_when and "not_equals" not in step.skip_when:
                    raise ManifestError(f"Step '{step.id}': skip_when needs 'equals' or 'not_equals'")

        resolve_order(self.contracts)


def references(value: Any) -> Set[str]:
    """
    Contract names referenced by an argument value

    '${deployer}' and '${feed:...}' are not contract references.
    """
    found = set()

    if isinstance(value, str):
        match = REF_PATTERN.match(value)
        if match:
            ref = match.group(1)
            if ref != DEPLOYER_REF and not ref.startswith(FEED_PREFIX):
                found.add(ref)
    elif isinstance(value, list):
        for item in value:
            found |= references(item)

    return found


def resolve_order(contracts: List[ContractSpec]) -> List[ContractSpec]:
    """
    Topological deployment order, stable with respect to declaration order

    Args:
        contracts: Contracts in declaration order

    Returns:
        Contracts ordered so every reference is deployed first

    Raises:
        ManifestError: On unknown references, duplicate names or cycles
    """
    by_name: Dict[str, ContractSpec] = {}
    for spec in contracts:
        if spec.name in by_name:
            raise ManifestError(f"Duplicate contract name '{spec.name}'")
        by_name[spec.name] = spec

    # Output names resolve to the contract that produces them
    producer = {name: name for name in by_name}
    for spec in contracts:
        for output in spec.outputs:
            producer[output] = spec.name

    deps: Dict[str, Set[str]] = {}
    for spec in contracts:
        refs = references(spec.args)
        unknown = refs - set(producer)
        if unknown:
            raise ManifestError(
                f"Contract '{spec.name}' references unknown contract(s): {', '.join(sorted(unknown))}"
            )
        deps[spec.name] = {producer[ref] for ref in refs}
        if spec.name in deps[spec.name]:
            raise ManifestError(f"Dependency cycle: '{spec.name}' references itself")

    ordered: List[ContractSpec] = []
    placed: Set[str] = set()
    remaining = list(contracts)

    while remaining:
        for spec in remaining:
            if deps[spec.name] <= placed:
                ordered.append(spec)
                placed.add(spec.name)
                remaining.remove(spec)
                break
        else:
            raise ManifestError(
                f"Dependency cycle between: {', '.join(spec.name for spec in remaining)}"
            )

    return ordered


def resolve_value(value: Any, lookup: Callable[[str], str], deployer: str, feeds: Optional[Dict[str, str]] = None) -> Any:
    """
    Resolve one manifest argument to a concrete value

    Args:
        value: Raw argument from the manifest
        lookup: Contract name -> address
        deployer: Deployer address for '${deployer}'
        feeds: Chainlink feeds for '${feed:PAIR}'

    Returns:
        Concrete argument
    """
    if isinstance(value, str):
        match = REF_PATTERN.match(value)
        if not match:
            return value

        ref = match.group(1)
        if ref == DEPLOYER_REF:
            return deployer

        if ref.startswith(FEED_PREFIX):
            pair = ref[len(FEED_PREFIX):]
            if not feeds or pair not in feeds:
                raise ManifestError(f"No Chainlink feed configured for {pair} on this network")
            return feeds[pair]

        return lookup(ref)

    if isinstance(value, list):
        return [resolve_value(item, lookup, deployer, feeds) for item in value]

    if isinstance(value, dict) and "units" in value:
        try:
            return parse_units(value["units"], int(value.get("decimals", 18)))
        except ValueError as e:
            raise ManifestError(f"Invalid units value {value!r}: {e}") from e

    return value


def resolve_args(args: List[Any], lookup: Callable[[str], str], deployer: str, feeds: Optional[Dict[str, str]] = None) -> List[Any]:
    """Resolve every argument of a constructor or step"""
    return [resolve_value(arg, lookup, deployer, feeds) for arg in args]


def load_manifest(path: Path) -> Manifest:
    """
    Load a manifest JSON file

    Raises:
        ManifestError: If the file is not valid JSON or fails validation
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in manifest {path}: {e}") from e

    return Manifest.from_dict(data)
