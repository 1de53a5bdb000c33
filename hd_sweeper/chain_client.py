"""
Chain Client

Async connection to one EVM network's RPC endpoint.

Features:
- Readiness check (chain id match, head block)
- Balance, block and nonce lookups
- Priority fee suggestion for dual-fee networks
- Signed native transfer submission
- Every call bounded by a timeout so one slow endpoint cannot stall a pass

Author: HD Sweeper
Version: 1.0.0
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers.rpc import AsyncHTTPProvider

from .network_registry import FeeModel, NetworkConfig


@dataclass
class ChainStatus:
    """Result of a readiness check"""
    network: str
    is_ready: bool
    chain_id: Optional[int]
    block_number: Optional[int]
    last_checked: datetime
    error_message: Optional[str] = None

    def __repr__(self):
        status = "✓ READY" if self.is_ready else "✗ NOT READY"
        return f"ChainStatus({self.network}: {status})"


class ChainClient:
    """
    RPC connection for a single network

    All methods may raise on I/O failure; callers decide how failures are
    isolated (per account, per estimation cycle).
    """

    def __init__(self, config: NetworkConfig, timeout: float = 30.0, w3: Optional[AsyncWeb3] = None):
        """
        Initialize chain client

        Args:
            config: Network configuration (endpoint, chain id, fee model)
            timeout: Seconds allowed per RPC call
            w3: Pre-built AsyncWeb3 instance (tests)
        """
        self.config = config
        self.network = config.network
        self.timeout = timeout

        if w3 is None:
            w3 = AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
            if config.poa:
                w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.w3 = w3

    def __repr__(self):
        return f"ChainClient({self.network.value})"

    async def _call(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def wait_ready(self) -> ChainStatus:
        """
        Check the endpoint answers and serves the expected chain

        Returns:
            ChainStatus; never raises
        """
        name = self.network.value
        try:
            chain_id = await self._call(self.w3.eth.chain_id)
            block_number = await self._call(self.w3.eth.block_number)
        except Exception as e:
            logger.warning(f"✗ {name} endpoint not ready: {e}")
            return ChainStatus(name, False, None, None, datetime.now(timezone.utc), str(e))

        if chain_id != self.config.chain_id:
            message = f"expected chain id {self.config.chain_id}, endpoint reports {chain_id}"
            logger.error(f"✗ {name} endpoint mismatch: {message}")
            return ChainStatus(name, False, chain_id, block_number, datetime.now(timezone.utc), message)

        logger.info(f"✓ {name} ready at block {block_number}")
        return ChainStatus(name, True, chain_id, block_number, datetime.now(timezone.utc))

    async def get_balance(self, address: str) -> int:
        return int(await self._call(self.w3.eth.get_balance(address)))

    async def get_block_number(self) -> int:
        return int(await self._call(self.w3.eth.block_number))

    async def get_block(self, identifier: Union[str, int] = 'latest') -> Dict[str, Any]:
        """Block with full transaction objects"""
        return await self._call(self.w3.eth.get_block(identifier, full_transactions=True))

    async def get_max_priority_fee(self) -> int:
        return int(await self._call(self.w3.eth.max_priority_fee))

    async def get_nonce(self, address: str) -> int:
        return int(await self._call(self.w3.eth.get_transaction_count(address, 'pending')))

    def build_transfer(self, sender: str, to: str, value: int, nonce: int, fee_estimate, gas: int) -> Dict[str, Any]:
        """
        Build a native transfer with fee fields copied from the estimate

        Args:
            sender: Sending address
            to: Destination address
            value: Amount in wei
            nonce: Sender nonce
            fee_estimate: FeeEstimate matching this network's fee model
            gas: Gas limit

        Returns:
            Transaction dict ready for signing
        """
        tx = {
            'from': sender,
            'to': Web3.to_checksum_address(to),
            'value': value,
            'gas': gas,
            'nonce': nonce,
            'chainId': self.config.chain_id,
        }
        if self.config.fee_model == FeeModel.DUAL:
            tx['type'] = 2
            tx['maxFeePerGas'] = fee_estimate.max_fee_per_gas
            tx['maxPriorityFeePerGas'] = fee_estimate.max_priority_fee_per_gas
        else:
            tx['gasPrice'] = fee_estimate.gas_price
        return tx

    async def send_transfer(
        self,
        account: LocalAccount,
        to: str,
        value: int,
        fee_estimate,
        gas: int,
    ) -> str:
        """
        Sign and broadcast a native transfer

        Returns:
            Transaction hash (0x-prefixed hex)
        """
        nonce = await self.get_nonce(account.address)
        tx = self.build_transfer(account.address, to, value, nonce, fee_estimate, gas)
        logger.debug(f"Transaction prepared for {self.network.value}: {tx}")

        signed = account.sign_transaction(tx)
        tx_hash = await self._call(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        return Web3.to_hex(tx_hash)

    async def close(self):
        """Close the provider's HTTP session"""
        provider = self.w3.provider
        disconnect = getattr(provider, 'disconnect', None)
        if disconnect is None:
            return
        try:
            await disconnect()
            logger.debug(f"✓ Closed {self.network.value} connection")
        except Exception as e:
            logger.debug(f"Error closing {self.network.value} connection: {e}")
