"""Client-side cache of payment proofs.

The cache lets a UI show content as unlocked right after paying, before the
chain or the gateway catch up. It is never a security boundary: the gateway
only trusts on-chain state.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any

from creatorhub.services.access import AccessGrant, AccessReason

logger = logging.getLogger(__name__)


class LocalProofCache:
    """JSON file of ``rentals_<wallet>``, ``purchases_<wallet>`` and
    ``subscriptions_<wallet>`` maps.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable proof cache %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".proofs-")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True)
        os.replace(tmp_name, self.path)

    @staticmethod
    def _rentals_key(wallet: str) -> str:
        return f"rentals_{wallet.lower()}"

    @staticmethod
    def _purchases_key(wallet: str) -> str:
        return f"purchases_{wallet.lower()}"

    @staticmethod
    def _subscriptions_key(wallet: str) -> str:
        return f"subscriptions_{wallet.lower()}"

    def _record(self, bucket: str, item: str, tx_hash: str) -> None:
        with self._lock:
            data = self._load()
            data.setdefault(bucket, {})[item] = tx_hash
            self._save(data)

    def record_rental(self, wallet: str, content_id: str, tx_hash: str) -> None:
        self._record(self._rentals_key(wallet), str(content_id), tx_hash)

    def record_purchase(self, wallet: str, content_id: str, tx_hash: str) -> None:
        self._record(self._purchases_key(wallet), str(content_id), tx_hash)

    def record_subscription(self, wallet: str, creator: str, tx_hash: str) -> None:
        self._record(self._subscriptions_key(wallet), creator.lower(), tx_hash)

    def rental_proof(self, wallet: str, content_id: str) -> str | None:
        return self._load().get(self._rentals_key(wallet), {}).get(str(content_id))

    def purchase_proof(self, wallet: str, content_id: str) -> str | None:
        return self._load().get(self._purchases_key(wallet), {}).get(str(content_id))

    def subscription_proof(self, wallet: str, creator: str) -> str | None:
        return self._load().get(self._subscriptions_key(wallet), {}).get(creator.lower())

    def hint(self, wallet: str, content_id: str, creator: str | None = None) -> AccessGrant:
        """Return a LOCAL_PROOF grant if this wallet has paid before."""
        if self.rental_proof(wallet, content_id) or self.purchase_proof(wallet, content_id):
            return AccessGrant.granted(AccessReason.LOCAL_PROOF)
        if creator and self.subscription_proof(wallet, creator):
            return AccessGrant.granted(AccessReason.LOCAL_PROOF)
        return AccessGrant.denied()

    def clear(self, wallet: str) -> None:
        with self._lock:
            data = self._load()
            data.pop(self._rentals_key(wallet), None)
            data.pop(self._purchases_key(wallet), None)
            data.pop(self._subscriptions_key(wallet), None)
            self._save(data)
