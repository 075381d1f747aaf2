"""
Minimal ABIs
Used when compiled Hardhat artifacts are not available (attach-only use)
"""

from typing import Dict, List


def _function(name: str, inputs=(), outputs=(), mutability: str = "view") -> Dict:
    """Build a function ABI entry from (name, type) pairs"""
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": arg_name, "type": arg_type} for arg_name, arg_type in inputs],
        "outputs": [{"name": out_name, "type": out_type} for out_name, out_type in outputs],
        "stateMutability": mutability,
    }


ERC20_ABI: List[Dict] = [
    _function("name", outputs=[("", "string")]),
    _function("symbol", outputs=[("", "string")]),
    _function("decimals", outputs=[("", "uint8")]),
    _function("totalSupply", outputs=[("", "uint256")]),
    _function("balanceOf", [("account", "address")], [("", "uint256")]),
    _function("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _function("approve", [("spender", "address"), ("value", "uint256")], [("", "bool")], "nonpayable"),
    _function("transfer", [("to", "address"), ("value", "uint256")], [("", "bool")], "nonpayable"),
    _function("owner", outputs=[("", "address")]),
]

MOCK_TOKEN_ABI: List[Dict] = ERC20_ABI + [
    _function("mint", [("to", "address"), ("amount", "uint256")], [], "nonpayable"),
    _function("getLargeAmount", [], [], "nonpayable"),
    _function("faucet", [("amount", "uint256")], [], "nonpayable"),
]

FUND_ABI: List[Dict] = [
    _function("invest", [("usdcAmount", "uint256")], [], "nonpayable"),
    _function("redeem", [("shareAmount", "uint256")], [], "nonpayable"),
    _function("initializeFund", [("initialUSDCAmount", "uint256")], [], "nonpayable"),
    _function("setUSDCToken", [("usdcToken", "address")], [], "nonpayable"),
    _function("addSupportedToken", [("token", "address"), ("allocation", "uint256")], [], "nonpayable"),
    _function("pause", [], [], "nonpayable"),
    _function("unpause", [], [], "nonpayable"),
    _function("isInitialized", outputs=[("", "bool")]),
    _function("paused", outputs=[("", "bool")]),
    _function("owner", outputs=[("", "address")]),
    _function("shareToken", outputs=[("", "address")]),
    _function("priceOracle", outputs=[("", "address")]),
    _function("uniswapIntegration", outputs=[("", "address")]),
    _function("getUSDCAddress", outputs=[("", "address")]),
    _function("getSupportedTokens", outputs=[("", "address[]")]),
    _function(
        "getFundStats",
        outputs=[("totalSupply", "uint256"), ("initialSupply", "uint256"), ("isInitialized", "bool")],
    ),
    _function("calculateNAV", outputs=[("", "uint256")]),
    _function("calculateMFCValue", outputs=[("", "uint256")]),
    _function("calculateTheoreticalMFCValue", outputs=[("", "uint256")]),
    _function(
        "getMFCComposition",
        outputs=[("tokens", "address[]"), ("ratios", "uint256[]"), ("usdcAmount", "uint256")],
    ),
    _function(
        "getFundTokenBalances",
        outputs=[("tokens", "address[]"), ("balances", "uint256[]"), ("decimals", "uint8[]")],
    ),
    _function("getInvestmentPreview", [("usdcAmount", "uint256")], [("", "uint256")]),
    _function("getRedemptionPreview", [("shareAmount", "uint256")], [("", "uint256")]),
    _function("minimumInvestment", outputs=[("", "uint256")]),
    _function("minimumRedemption", outputs=[("", "uint256")]),
    _function("managementFeeRate", outputs=[("", "uint256")]),
    _function("lastFeeCollection", outputs=[("", "uint256")]),
    _function("totalManagementFeesCollected", outputs=[("", "uint256")]),
    _function("getWithdrawableManagementFees", outputs=[("", "uint256")]),
]

UNISWAP_INTEGRATION_ABI: List[Dict] = [
    _function("owner", outputs=[("", "address")]),
    _function("useFixedRates", outputs=[("", "bool")]),
    _function("fixedRates", [("token", "address")], [("", "uint256")]),
    _function("getFixedRate", [("token", "address")], [("", "uint256")]),
    _function("setFixedRate", [("token", "address"), ("rate", "uint256")], [], "nonpayable"),
    _function("setFixedRateMode", [("enabled", "bool")], [], "nonpayable"),
    _function(
        "initializeFixedRates",
        [("weth", "address"), ("wbtc", "address"), ("link", "address"), ("dai", "address")],
        [],
        "nonpayable",
    ),
    _function(
        "setExchangeRate",
        [("tokenIn", "address"), ("tokenOut", "address"), ("rate", "uint256")],
        [],
        "nonpayable",
    ),
    _function("setAuthorizedCaller", [("caller", "address"), ("authorized", "bool")], [], "nonpayable"),
    _function("authorizedCallers", [("caller", "address")], [("", "bool")]),
]

PRICE_ORACLE_ABI: List[Dict] = [
    _function("owner", outputs=[("", "address")]),
    _function(
        "setPriceFeed",
        [("token", "address"), ("priceFeed", "address"), ("symbol", "string")],
        [],
        "nonpayable",
    ),
    _function("setPriceFeedBySymbol", [("token", "address"), ("symbol", "string")], [], "nonpayable"),
    _function("priceFeeds", [("token", "address")], [("", "address")]),
    _function("tokenBySymbol", [("symbol", "string")], [("", "address")]),
    _function(
        "getPriceFeedInfo",
        [("token", "address")],
        [("priceFeed", "address"), ("decimals", "uint8"), ("description", "string")],
    ),
    _function("getLatestPrice", [("token", "address")], [("price", "int256"), ("timestamp", "uint256")]),
    _function(
        "getLatestPriceBySymbol",
        [("symbol", "string")],
        [("price", "int256"), ("timestamp", "uint256")],
    ),
    _function(
        "getMultiplePrices",
        [("tokens", "address[]")],
        [("prices", "int256[]"), ("timestamps", "uint256[]")],
    ),
]

AGGREGATOR_V3_ABI: List[Dict] = [
    _function("decimals", outputs=[("", "uint8")]),
    _function("description", outputs=[("", "string")]),
    _function(
        "latestRoundData",
        outputs=[
            ("roundId", "uint80"),
            ("answer", "int256"),
            ("startedAt", "uint256"),
            ("updatedAt", "uint256"),
            ("answeredInRound", "uint80"),
        ],
    ),
]

# Artifact name -> minimal ABI
MINIMAL_ABIS: Dict[str, List[Dict]] = {
    "MockUSDC": MOCK_TOKEN_ABI,
    "MockWETH": MOCK_TOKEN_ABI,
    "MockWBTC": MOCK_TOKEN_ABI,
    "MockLINK": MOCK_TOKEN_ABI,
    "MockDAI": MOCK_TOKEN_ABI,
    "MockUNI": MOCK_TOKEN_ABI,
    "FundShareToken": ERC20_ABI,
    "ERC20": ERC20_ABI,
    "MockFund": FUND_ABI,
    "FixedRateMockFund": FUND_ABI,
    "UniswapIntegration": UNISWAP_INTEGRATION_ABI,
    "FixedRateUniswapIntegration": UNISWAP_INTEGRATION_ABI,
    "MockUniswapIntegration": UNISWAP_INTEGRATION_ABI,
    "ChainlinkPriceOracle": PRICE_ORACLE_ABI,
    "SepoliaPriceOracle": PRICE_ORACLE_ABI,
    "PriceOracle": PRICE_ORACLE_ABI,
    "AggregatorV3Interface": AGGREGATOR_V3_ABI,
}
