"""
carledger: Car Ownership Ledger

Tracks ownership of cars in a versioned, append-only key-value ledger and
enforces who may create, mutate, transfer or delete them.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          OPERATION SURFACE                               │
    │    contract.py       exists / get / queries / writes / provenance        │
    │    cli.py            file-backed command line                           │
    │                                                                          │
    │                          OWNERSHIP CORE                                  │
    │    transfer.py       create, change owner, respray, delete, confirm     │
    │    authorization.py  custodian / owner-name / admin decision            │
    │    quota.py          per-identity custody cap                           │
    │    provenance.py     deduplicated owner timeline from history           │
    │    identity.py       display name extraction from x509 identities       │
    │    keys.py           CAR<N> key rules                                   │
    │                                                                          │
    │                          COLLABORATORS                                   │
    │    store.py          versioned store contract + in-memory ledger        │
    │    events.py         ownership audit events + bus                       │
    │    config.py         YAML / environment configuration                   │
    │    observability.py  structured logging                                 │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Custody vs. ownership: ``certOwner`` is the strong identity holding a car,
    ``owner`` the display name it belongs to. They diverge while a transfer is
    pending; the new owner's first mutation or ``confirm_transfer`` closes it.

    Provenance: previous owners are derived from the key's history, skipping
    writes that did not change the owner name.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

__version__ = "1.0.0"


# Lazy imports keep ``import carledger`` cheap for the CLI
def __getattr__(name):
    """Lazy import carledger modules on first access."""

    if name in ("CarContract", "QueryOptions", "SAMPLE_CARS"):
        from carledger import contract
        return getattr(contract, name)

    if name in ("TransferProtocol",):
        from carledger import transfer
        return getattr(transfer, name)

    if name in ("AuthorizationEngine", "AuthorizationDecision", "Grant"):
        from carledger import authorization
        return getattr(authorization, name)

    if name in ("QuotaEnforcer",):
        from carledger import quota
        return getattr(quota, name)

    if name in ("reconstruct", "DELETED_OWNER"):
        from carledger import provenance
        return getattr(provenance, name)

    if name in ("Caller", "extract_display_name", "replace_display_name", "identity_from_certificate"):
        from carledger import identity
        return getattr(identity, name)

    if name in ("verify_key", "is_valid_key"):
        from carledger import keys
        return getattr(keys, name)

    if name in ("Car", "AssetState", "HistoryRecord", "PreviousOwnersResult", "QueryResult"):
        from carledger import models
        return getattr(models, name)

    if name in ("LedgerStore", "InMemoryLedger", "JsonFileLedger", "ResultIterator"):
        from carledger import store
        return getattr(store, name)

    if name in ("EventBus", "CreateCarEvent", "ChangeOwnerEvent", "ChangeColorEvent", "DeleteCarEvent"):
        from carledger import events
        return getattr(events, name)

    if name in ("LedgerConfig", "get_config", "load_config"):
        from carledger import config
        return getattr(config, name)

    if name in ("LedgerError", "InvalidKey", "NotFound", "AlreadyExists", "EmptyField",
                "NoOpRejected", "Unauthorized", "QuotaExceeded", "CorruptHistory"):
        from carledger import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'carledger' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Surface
    "CarContract",
    "QueryOptions",
    # Core
    "TransferProtocol",
    "AuthorizationEngine",
    "QuotaEnforcer",
    "reconstruct",
    "Caller",
    "verify_key",
    # Records
    "Car",
    "AssetState",
    "HistoryRecord",
    "PreviousOwnersResult",
    # Collaborators
    "InMemoryLedger",
    "JsonFileLedger",
    "EventBus",
    "LedgerConfig",
    # Errors
    "LedgerError",
    "InvalidKey",
    "NotFound",
    "AlreadyExists",
    "EmptyField",
    "NoOpRejected",
    "Unauthorized",
    "QuotaExceeded",
    "CorruptHistory",
]
