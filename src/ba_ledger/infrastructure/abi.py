"""Contract ABIs: only the entries the engine touches."""

BATCH_AUCTION_ABI: list[dict] = [
    {
        "type": "function",
        "name": "isRoundActive",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "currentRoundId",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "lastClearingTime",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "ROUND_DURATION",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "userBalances",
        "stateMutability": "view",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "executeClearing",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "clearingPrice", "type": "uint256"},
            {"name": "users", "type": "address[]"},
            {"name": "tokenAmounts", "type": "uint256[]"},
            {"name": "costAmounts", "type": "uint256[]"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "executeClearing",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "clearingPrice", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "startNextRound",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "BidPlaced",
        "anonymous": False,
        "inputs": [
            {"name": "roundId", "type": "uint256", "indexed": True},
            {"name": "user", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "limitPrice", "type": "uint256", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]

ERC20_BALANCE_ABI: list[dict] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

SETTLEMENT_SIGNATURE = "executeClearing(uint256,address[],uint256[],uint256[])"
SIMPLIFIED_SETTLEMENT_SIGNATURE = "executeClearing(uint256)"
