"""Per-identity car quota.

A strong identity may hold at most ``policy.max_cars`` cars as custodian. The
count comes from an indexed query on ``certOwner``; the administrative
organisation is exempt. The same limit applies to creating a car and to
claiming one, only the failure message differs.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from typing import Optional

from carledger.config import LedgerConfig, get_config
from carledger.errors import QuotaExceeded
from carledger.identity import Caller
from carledger.models import DOC_TYPE_CAR
from carledger.observability import LedgerLayer, get_logger
from carledger.store import LedgerStore

log = get_logger("quota", LedgerLayer.QUOTA)


class QuotaEnforcer:

    def __init__(self, store: LedgerStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or get_config()

    def count_held(self, identity: str) -> int:
        """Number of cars whose custodian is ``identity``."""
        count = 0
        with self.store.get_query_result({"docType": DOC_TYPE_CAR, "certOwner": identity}) as results:
            for _ in results:
                count += 1
        return count

    def check_capacity(self, caller: Caller, is_claim: bool = False, key: str = "") -> None:
        """Raise ``QuotaExceeded`` if ``caller`` may not take custody of another car."""
        if caller.org == self.config.admin_org:
            return

        limit = self.config.max_cars
        held = self.count_held(caller.identity)
        if held >= limit:
            log.warning(
                "Quota reached",
                key=key,
                caller=caller.display_name,
                held=held,
                limit=limit,
                is_claim=is_claim,
            )
            raise QuotaExceeded(key, caller.display_name, limit, is_claim)
