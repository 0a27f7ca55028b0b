"""
Blockchain Service - binding for the pool oracle contract that stores the
headline APY/TVL figures for the two tracked protocols.
"""
from web3 import Web3
from eth_account import Account
from shared.config import settings
from shared.web3_client import get_web3
from agents.bityield.errors import ConfigurationError, OracleSubmissionError
import structlog

logger = structlog.get_logger()

POOL_ORACLE_ABI = [
    {"inputs": [
        {"name": "apyA", "type": "uint256"},
        {"name": "apyB", "type": "uint256"},
        {"name": "tvlA", "type": "uint256"},
        {"name": "tvlB", "type": "uint256"},
    ], "name": "updateAllData", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "getAllData", "outputs": [
        {"name": "apyA", "type": "uint256"},
        {"name": "apyB", "type": "uint256"},
        {"name": "tvlA", "type": "uint256"},
        {"name": "tvlB", "type": "uint256"},
        {"name": "updatedAt", "type": "uint256"},
    ], "stateMutability": "view", "type": "function"},
]

UPDATE_GAS_LIMIT = 200_000


class PoolOracleContract:
    def __init__(
        self,
        address: str = settings.POOL_ORACLE_ADDRESS,
        private_key: str = settings.ORACLE_PRIVATE_KEY,
        rpc_url: str = settings.ORACLE_RPC_URL,
        chain_id: int = settings.CHAIN_ID,
    ):
        self.address = address
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._private_key = private_key
        self._w3: Web3 | None = None
        self._contract = None

    def _get_contract(self):
        if self._contract is not None:
            return self._contract
        if not self.address:
            raise ConfigurationError("POOL_ORACLE_ADDRESS not configured")
        if not self.rpc_url:
            raise ConfigurationError("ORACLE_RPC_URL not configured")
        self._w3 = get_web3(self.rpc_url)
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(self.address),
            abi=POOL_ORACLE_ABI,
        )
        return self._contract

    def submit(self, apy_a: int, apy_b: int, tvl_a: int, tvl_b: int) -> str:
        """Broadcast updateAllData. Returns the tx hash once the node accepts it."""
        contract = self._get_contract()
        if not self._private_key:
            raise ConfigurationError("ORACLE_PRIVATE_KEY not configured")
        account = Account.from_key(self._private_key)
        w3 = self._w3

        try:
            nonce = w3.eth.get_transaction_count(account.address)
            tx = contract.functions.updateAllData(apy_a, apy_b, tvl_a, tvl_b).build_transaction({
                "from": account.address,
                "nonce": nonce,
                "gas": UPDATE_GAS_LIMIT,
                "gasPrice": w3.eth.gas_price,
                "chainId": self.chain_id,
            })
            signed = account.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise OracleSubmissionError(f"Oracle update broadcast failed: {e}") from e

        logger.info(
            "oracle_update_broadcast",
            tx_hash=tx_hash.hex(),
            apy_a=apy_a, apy_b=apy_b, tvl_a=tvl_a, tvl_b=tvl_b,
        )
        return tx_hash.hex()

    def read_state(self) -> dict:
        result = self._get_contract().functions.getAllData().call()
        return {
            "apy_a": result[0],
            "apy_b": result[1],
            "tvl_a": result[2],
            "tvl_b": result[3],
            "updated_at": result[4],
        }
