"""
Config Loader
Reads the JSON configuration under config/ and environment settings
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError, NetworkNotFoundError

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


def load_json_config(name: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load a JSON file from the config directory

    Args:
        name: File name relative to config/ (e.g., 'networks.json')
        config_dir: Override for the config directory

    Returns:
        Parsed JSON document

    Raises:
        ConfigurationError: If the file is missing or not valid JSON
    """
    path = Path(config_dir or CONFIG_DIR) / name

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e


def get_network_config(network: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Get configuration for a named network

    Args:
        network: Network name ("localhost", "hardhat", "sepolia")
        config_dir: Override for the config directory

    Returns:
        Network config dict with 'name' added

    Raises:
        NetworkNotFoundError: If the network is not configured
    """
    networks = load_json_config("networks.json", config_dir).get("networks", {})

    if network not in networks:
        raise NetworkNotFoundError(
            f"Network '{network}' not found in config/networks.json "
            f"(available: {', '.join(sorted(networks))})"
        )

    config = dict(networks[network])
    config["name"] = network
    return config


def load_token_config(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load the mock token catalogue"""
    config = load_json_config("tokens.json", config_dir)

    for symbol, token in config.get("tokens", {}).items():
        for field in ("artifact", "decimals"):
            if field not in token:
                raise ConfigurationError(f"Token '{symbol}' is missing '{field}' in tokens.json")

    return config


def get_token_config(symbol: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Catalogue entry for one token

    Raises:
        ConfigurationError: If the symbol is not in tokens.json
    """
    tokens = load_token_config(config_dir).get("tokens", {})
    symbol = symbol.upper()

    if symbol not in tokens:
        raise ConfigurationError(
            f"Token '{symbol}' not found in config/tokens.json "
            f"(available: {', '.join(sorted(tokens))})"
        )

    return dict(tokens[symbol], symbol=symbol)


def resolve_rpc_url(network_config: Dict[str, Any]) -> str:
    """
    Resolve the RPC URL for a network from the environment

    Args:
        network_config: Network config from get_network_config()

    Returns:
        RPC URL

    Raises:
        ConfigurationError: If neither the env variable nor a default is set
    """
    env_name = network_config.get("rpc_url_env")
    rpc_url = os.getenv(env_name) if env_name else None

    if not rpc_url:
        rpc_url = network_config.get("default_rpc_url")

    if not rpc_url:
        raise ConfigurationError(
            f"{env_name} must be set in .env to use network '{network_config.get('name')}'"
        )

    return rpc_url


def get_artifacts_dir() -> Path:
    """Hardhat artifacts directory"""
    return Path(os.getenv("FUND_OPS_ARTIFACTS_DIR", PROJECT_ROOT / "artifacts"))


def get_deployments_dir() -> Path:
    """Deployment records directory"""
    return Path(os.getenv("FUND_OPS_DEPLOYMENTS_DIR", PROJECT_ROOT / "deployments"))


def get_manifest_path(name: str, config_dir: Optional[Path] = None) -> Path:
    """
    Resolve a manifest name or path

    Args:
        name: Manifest name ('fixed-rate-fund') or a path to a JSON file

    Returns:
        Path to the manifest file
    """
    candidate = Path(name)
    if candidate.suffix == ".json" and candidate.exists():
        return candidate

    path = Path(config_dir or CONFIG_DIR) / "manifests" / f"{name}.json"
    if not path.exists():
        raise ConfigurationError(f"Manifest not found: {name} (looked in {path.parent})")

    return path
