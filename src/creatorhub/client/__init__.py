"""Client-side x402 payment tooling."""

from .executor import PaymentError, PaymentErrorCode, PaymentExecutor
from .proof_cache import LocalProofCache
from .wallet import JsonRpcWalletProvider, WalletProvider, WalletRpcError
from .x402 import X402Client, X402ClientError

__all__ = [
    "JsonRpcWalletProvider",
    "LocalProofCache",
    "PaymentError",
    "PaymentErrorCode",
    "PaymentExecutor",
    "WalletProvider",
    "WalletRpcError",
    "X402Client",
    "X402ClientError",
]
