from __future__ import annotations

import json
from pathlib import Path


def _load_abi(rel_path: str):
    path = Path(__file__).resolve().parent.parent / "abi" / rel_path
    return json.loads(path.read_text())


ERC20_ABI = _load_abi("erc20.json")
WETH_ABI = _load_abi("weth.json")
V3_ROUTER_ABI = _load_abi("uniswap_v3_router.json")
V3_POOL_ABI = _load_abi("uniswap_v3_pool.json")


def batch_mint_abi(method: str) -> list[dict]:
    # Faucets expose one batchMint<SYMBOL>(uint256) per token, so the fragment is built per pool
    return [
        {
            "inputs": [{"internalType": "uint256", "name": "amount", "type": "uint256"}],
            "name": method,
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function",
        }
    ]
