"""
Address Export
Renders a deployment record for the frontend (addresses.ts or .env lines)
"""

import re
from pathlib import Path
from typing import Dict, Optional
from loguru import logger

FORMATS = ("ts", "env")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def env_name(contract_name: str) -> str:
    """'MockUSDC' -> 'NEXT_PUBLIC_MOCK_USDC_ADDRESS'"""
    snake = _CAMEL_BOUNDARY.sub("_", contract_name).upper()
    return f"NEXT_PUBLIC_{snake}_ADDRESS"


def render_typescript(addresses: Dict[str, str], network: str, chain_id: Optional[int] = None, timestamp: Optional[str] = None) -> str:
    """
    Render an addresses.ts module

    Args:
        addresses: Name -> address
        network: Network name for the header
        chain_id: Chain id exported as CHAIN_ID
        timestamp: Record timestamp for the header

    Returns:
        TypeScript source
    """
    lines = [
        "// Generated from the deployment record - do not edit by hand",
        f"// Network: {network}",
    ]
    if timestamp:
        lines.append(f"// Deployed: {timestamp}")
    lines.append("")

    if chain_id is not None:
        lines.append(f"export const CHAIN_ID = {chain_id};")
        lines.append("")

    lines.append("export const CONTRACT_ADDRESSES = {")
    for name, address in addresses.items():
        lines.append(f'  {name}: "{address}",')
    lines.append("} as const;")
    lines.append("")
    lines.append("export type ContractAddresses = typeof CONTRACT_ADDRESSES;")
    lines.append("")
    lines.append("export default CONTRACT_ADDRESSES;")

    return "\n".join(lines) + "\n"


def render_env(addresses: Dict[str, str], chain_id: Optional[int] = None) -> str:
    """Render NEXT_PUBLIC_* env lines"""
    lines = []
    if chain_id is not None:
        lines.append(f"NEXT_PUBLIC_CHAIN_ID={chain_id}")
    for name, address in addresses.items():
        lines.append(f"{env_name(name)}={address}")
    return "\n".join(lines) + "\n"


def export_addresses(record, fmt: str = "ts", out: Optional[Path] = None) -> str:
    """
    Render a deployment record and optionally write it

    Args:
        record: DeploymentRecord
        fmt: 'ts' or 'env'
        out: Output file (content only returned if None)

    Returns:
        Rendered content
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unknown export format '{fmt}' (expected one of {', '.join(FORMATS)})")

    addresses = record.all_addresses()

    if fmt == "ts":
        content = render_typescript(addresses, record.network, record.chain_id, record.timestamp)
    else:
        content = render_env(addresses, record.chain_id)

    if out is not None:
        out = Path(out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(content)
        logger.success(f"✓ Wrote {len(addresses)} address(es) to {out}")

    return content
