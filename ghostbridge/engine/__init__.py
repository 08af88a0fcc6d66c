"""
Ghost Bridge Order Engine

Confidential trigger orders for perpetual futures. Orders are committed as
hashes, revealed only at execution time and settled against an external
venue in the same atomic unit.

Components:
  - Order Commitment Codec (blake3 preimage hash, params commitment)
  - Authority Registry (bounded order hashes + executor allow-list)
  - Price Oracle Reader (validated and legacy feed layouts)
  - Settlement Call Builder (40-byte place_perp_order payload)
  - Order lifecycles (compressed, encrypted, commitment-reveal)
  - Domain Delegation Protocol (custody hand-off, bundled handlers)
  - Ledger runtime (records, custody, atomic units, dispatch)
"""

from .types import (
    TriggerCondition,
    OrderSide,
    OrderType,
    MarketType,
)
from .commitment import (
    CompressedOrder,
    OrderParams,
    compute_hash,
    compute_params_commitment,
    verify_params_commitment,
    trigger_met,
    expired,
)
from .registry import ExecutorAuthority
from .oracle import (
    PriceFeed,
    PriceFeedFormat,
    PriceFeedReader,
    decode_price,
)
from .settlement import (
    AccountMeta,
    SettlementAccounts,
    SettlementCall,
    build_place_perp_order,
    build_settlement_call,
)
from .records import (
    EncryptedOrder,
    EncryptedOrderStatus,
    GhostOrder,
    GhostOrderStatus,
)
from .delegation import (
    CallHandler,
    CommitType,
    MagicAction,
    MagicProgram,
    build_redelegate_handler,
)
from .ledger import (
    Clock,
    Domain,
    Ledger,
    ScheduledTask,
)
from .bridge import (
    GhostBridgeProgram,
    CreateCompressedOrderArgs,
    ConsumeAndExecuteArgs,
    TriggerAndExecuteArgs,
)
from .crank import (
    GhostCrankProgram,
    CreateGhostOrderArgs,
)
from .runtime import (
    Instruction,
    ExecResult,
    Runtime,
)

__all__ = [
    # Types
    "TriggerCondition", "OrderSide", "OrderType", "MarketType",
    # Commitment
    "CompressedOrder", "OrderParams", "compute_hash", "compute_params_commitment",
    "verify_params_commitment", "trigger_met", "expired",
    # Registry
    "ExecutorAuthority",
    # Oracle
    "PriceFeed", "PriceFeedFormat", "PriceFeedReader", "decode_price",
    # Settlement
    "AccountMeta", "SettlementAccounts", "SettlementCall",
    "build_place_perp_order", "build_settlement_call",
    # Records
    "EncryptedOrder", "EncryptedOrderStatus", "GhostOrder", "GhostOrderStatus",
    # Delegation
    "CallHandler", "CommitType", "MagicAction", "MagicProgram", "build_redelegate_handler",
    # Ledger
    "Clock", "Domain", "Ledger", "ScheduledTask",
    # Programs
    "GhostBridgeProgram", "CreateCompressedOrderArgs", "ConsumeAndExecuteArgs",
    "TriggerAndExecuteArgs", "GhostCrankProgram", "CreateGhostOrderArgs",
    # Runtime
    "Instruction", "ExecResult", "Runtime",
]
