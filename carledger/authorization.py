"""
Mutation authorization.

Custody of a car is tracked twice: ``certOwner`` is the strong identity that
holds it, ``owner`` is the human-readable name it nominally belongs to. The
two diverge after ``change_owner`` hands a car to somebody new; the new owner
proves who they are by presenting an identity whose display name matches
``owner``, and their first mutation (or an explicit confirmation) promotes
them to custodian. From then on the previous custodian loses the ability to
mutate the car.

Decision order for a caller acting on an existing car:

    1. legacy record without certOwner     allow
    2. caller identity == certOwner         allow
    3. caller display name == owner         allow, claim custody
    4. caller org == administrative org     allow
    5. otherwise                            deny

A claim is also a quota check: a caller already at the limit cannot take
custody of another car, and the failure is reported as ``QuotaExceeded``
rather than ``Unauthorized``.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from carledger.config import LedgerConfig, get_config
from carledger.errors import Unauthorized
from carledger.identity import Caller, extract_display_name
from carledger.models import Car
from carledger.observability import LedgerLayer, get_logger
from carledger.quota import QuotaEnforcer

log = get_logger("authorization", LedgerLayer.AUTHORIZATION)


class Grant(Enum):
    """Which rule let the caller through (or that none did)."""
    LEGACY = "legacy"
    CUSTODIAN = "custodian"
    OWNER_NAME = "owner_name"
    ADMIN = "admin"
    DENIED = "denied"


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    must_claim: bool
    grant: Grant


class AuthorizationEngine:

    def __init__(self, quota: QuotaEnforcer, config: Optional[LedgerConfig] = None):
        self.quota = quota
        self.config = config or get_config()

    def authorize_mutation(self, car: Car, caller: Caller) -> AuthorizationDecision:
        """Pure decision, no quota check and no side effects."""
        if not car.cert_owner:
            return AuthorizationDecision(True, False, Grant.LEGACY)

        if caller.identity == car.cert_owner:
            return AuthorizationDecision(True, False, Grant.CUSTODIAN)

        caller_name = extract_display_name(caller.identity)
        if caller_name and caller_name == car.owner:
            return AuthorizationDecision(True, True, Grant.OWNER_NAME)

        if caller.org == self.config.admin_org:
            return AuthorizationDecision(True, False, Grant.ADMIN)

        return AuthorizationDecision(False, False, Grant.DENIED)

    def require_mutation(self, key: str, car: Car, caller: Caller, action: str) -> AuthorizationDecision:
        """Authorize or raise; a claim additionally has to pass the quota.

        ``action`` completes the denial message, e.g. ``"The car CAR1 cannot be deleted"``.
        """
        decision = self.authorize_mutation(car, caller)
        if not decision.allowed:
            caller_name = extract_display_name(caller.identity)
            custodian_name = extract_display_name(car.cert_owner)
            log.warning(
                "Mutation denied",
                key=key,
                caller=caller_name,
                custodian=custodian_name,
                org=caller.org,
            )
            raise Unauthorized(
                key,
                caller_name,
                custodian_name,
                f"{action}. User {caller_name} not authorised to modify a car owned by {custodian_name}.",
            )

        if decision.must_claim:
            self.quota.check_capacity(caller, is_claim=True, key=key)

        log.debug("Mutation authorized", key=key, grant=decision.grant.value, claim=decision.must_claim)
        return decision
