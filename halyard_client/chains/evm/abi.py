# Minimal ABI fragments for the Halyard contracts, ERC20 and Pyth.

_ASSET_COMPONENTS = [
    {"internalType": "address", "name": "tokenAddress", "type": "address"},
    {"internalType": "uint8", "name": "decimals", "type": "uint8"},
    {"internalType": "bool", "name": "isActive", "type": "bool"},
    {"internalType": "uint256", "name": "liquidityIndex", "type": "uint256"},
    {"internalType": "uint256", "name": "lastUpdateTimestamp", "type": "uint256"},
    {"internalType": "string", "name": "symbol", "type": "string"},
    {"internalType": "uint256", "name": "totalScaledSupply", "type": "uint256"},
    {"internalType": "uint256", "name": "totalDeposits", "type": "uint256"},
    {"internalType": "uint256", "name": "totalBorrows", "type": "uint256"},
    {"internalType": "uint256", "name": "baseRate", "type": "uint256"},
    {"internalType": "uint256", "name": "slope1", "type": "uint256"},
    {"internalType": "uint256", "name": "slope2", "type": "uint256"},
    {"internalType": "uint256", "name": "kink", "type": "uint256"},
    {"internalType": "uint256", "name": "reserveFactor", "type": "uint256"},
]


def _view(name: str, inputs: list[tuple[str, str]], output: str) -> dict:
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"internalType": output, "name": "", "type": output}],
        "stateMutability": "view",
        "type": "function",
    }


def _write(name: str, inputs: list[tuple[str, str]], payable: bool = False) -> dict:
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [],
        "stateMutability": "payable" if payable else "nonpayable",
        "type": "function",
    }


DEPOSIT_MANAGER_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "tokenId", "type": "bytes32"}],
        "name": "getAsset",
        "outputs": [
            {
                "components": _ASSET_COMPONENTS,
                "internalType": "struct DepositManager.Asset",
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    _view("getSupportedTokens", [], "bytes32[]"),
    _view("balanceOf", [("tokenId", "bytes32"), ("user", "address")], "uint256"),
    _view("RAY", [], "uint256"),
    _write("deposit", [("tokenId", "bytes32"), ("amount", "uint256")], payable=True),
    _write("withdraw", [("tokenId", "bytes32"), ("amount", "uint256")]),
]

BORROW_MANAGER_ABI = [
    _view("borrowIndex", [("tokenId", "bytes32")], "uint256"),
    _view("totalBorrowsScaled", [("tokenId", "bytes32")], "uint256"),
    _view("userBorrowScaled", [("tokenId", "bytes32"), ("user", "address")], "uint256"),
    _write(
        "borrow",
        [
            ("tokenId", "bytes32"),
            ("amount", "uint256"),
            ("pythUpdateData", "bytes[]"),
            ("priceIds", "bytes32[]"),
        ],
        payable=True,
    ),
    _write("repay", [("tokenId", "bytes32"), ("amount", "uint256")], payable=True),
    _write(
        "repay",
        [
            ("tokenId", "bytes32"),
            ("amount", "uint256"),
            ("pythUpdateData", "bytes[]"),
            ("priceIds", "bytes32[]"),
        ],
        payable=True,
    ),
]

ERC20_ABI = [
    _view("balanceOf", [("account", "address")], "uint256"),
    _view("allowance", [("owner", "address"), ("spender", "address")], "uint256"),
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

PYTH_ABI = [
    _view("getUpdateFee", [("updateData", "bytes[]")], "uint256"),
    _write("updatePriceFeeds", [("updateData", "bytes[]")], payable=True),
]

MOCK_PYTH_ABI = PYTH_ABI + [
    {
        "inputs": [
            {"internalType": "bytes32", "name": "id", "type": "bytes32"},
            {"internalType": "int64", "name": "price", "type": "int64"},
            {"internalType": "uint64", "name": "conf", "type": "uint64"},
            {"internalType": "int32", "name": "expo", "type": "int32"},
            {"internalType": "int64", "name": "emaPrice", "type": "int64"},
            {"internalType": "uint64", "name": "emaConf", "type": "uint64"},
            {"internalType": "uint64", "name": "publishTime", "type": "uint64"},
            {"internalType": "uint64", "name": "prevPublishTime", "type": "uint64"},
        ],
        "name": "createPriceFeedUpdateData",
        "outputs": [{"internalType": "bytes", "name": "priceFeedData", "type": "bytes"}],
        "stateMutability": "pure",
        "type": "function",
    },
]
