"""Sweep build, broadcast and fee estimation endpoints.

Amounts travel as decimal strings in the chain's smallest unit so that
JSON clients never round them through floats.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator

from chainsweep.builders import ChainBuilderFactory
from chainsweep.types import BroadcastParams, BuildTxParams

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_integer_amount(v: str) -> str:
    v = v.strip()
    if not v.isdigit():
        raise ValueError(f"Amount must be a non-negative integer string, got {v!r}")
    return v


class BuildTxRequest(BaseModel):
    """Request to build an unsigned sweep transaction."""

    chain: str = Field(..., description="Chain tag: evm, btc, trc, ada, xrp")
    network: str = Field(..., description="Network name (ethereum, polygon, mainnet...)")
    asset: str = Field(..., min_length=2, max_length=20, description="Asset symbol")
    from_address: str = Field(..., min_length=1, max_length=128, description="Deposit address")
    to_address: str = Field(..., min_length=1, max_length=128, description="Sweep wallet address")
    balance: str = Field(..., description="Balance in smallest unit as integer string")
    deposit_index: Optional[int] = Field(None, ge=0, description="HD derivation index")
    chain_specific: dict[str, Any] = Field(default_factory=dict)

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, v: str) -> str:
        """Validate balance is an integer string."""
        return _parse_integer_amount(v)

    def to_params(self) -> BuildTxParams:
        builder = ChainBuilderFactory.create(self.chain)
        return BuildTxParams(
            chain=builder.chain,
            network=self.network,
            asset=self.asset,
            from_address=self.from_address,
            to_address=self.to_address,
            balance=int(self.balance),
            deposit_index=self.deposit_index,
            chain_specific=self.chain_specific,
        )


class BroadcastRequest(BaseModel):
    """Request to submit a signed transaction."""

    chain: str = Field(..., description="Chain tag")
    network: str = Field(..., description="Network name")
    signed_tx: str = Field(..., min_length=1, description="Signed payload (hex, JSON or blob)")


class FeeEstimateRequest(BaseModel):
    """Request for a fee estimate; balance is optional."""

    chain: str
    network: str
    asset: str = Field(..., min_length=2, max_length=20)
    from_address: str = ""
    to_address: str = ""
    balance: str = "0"
    chain_specific: dict[str, Any] = Field(default_factory=dict)

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, v: str) -> str:
        return _parse_integer_amount(v)


class FeeEstimateResponse(BaseModel):
    """Estimated fee in the chain's smallest unit."""

    chain: str
    network: str
    estimated_fee: str


@router.get("/chains")
async def list_chains():
    """List recognized and implemented chain tags."""
    return {
        "supported": [chain.value for chain in ChainBuilderFactory.get_supported_chains()],
        "implemented": [chain.value for chain in ChainBuilderFactory.get_implemented_chains()],
    }


@router.post("/tx/build")
async def build_transaction(request: BuildTxRequest):
    """Build an unsigned sweep transaction for external signing."""
    params = request.to_params()
    builder = ChainBuilderFactory.create(params.chain)

    unsigned = await builder.build_unsigned_tx(params)
    logger.info(
        f"Built {params.chain.value}/{params.network} sweep from {params.from_address} "
        f"(fee {unsigned.estimated_fee})"
    )
    return unsigned.to_dict()


@router.post("/tx/broadcast")
async def broadcast_transaction(request: BroadcastRequest):
    """Submit a signed transaction. Not retried; check the result before resubmitting."""
    builder = ChainBuilderFactory.create(request.chain)
    params = BroadcastParams(chain=builder.chain, network=request.network, signed_tx=request.signed_tx)

    result = await builder.broadcast_tx(params)
    return result.to_dict()


@router.post("/fees/estimate", response_model=FeeEstimateResponse)
async def estimate_fee(request: FeeEstimateRequest):
    """Estimate the fee a sweep would pay."""
    builder = ChainBuilderFactory.create(request.chain)
    params = BuildTxParams(
        chain=builder.chain,
        network=request.network,
        asset=request.asset,
        from_address=request.from_address,
        to_address=request.to_address,
        balance=int(request.balance),
        chain_specific=request.chain_specific,
    )

    fee = await builder.estimate_fee(params)
    return FeeEstimateResponse(chain=builder.chain.value, network=request.network, estimated_fee=str(fee))
