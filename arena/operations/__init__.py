"""
Operations Layer

This package provides business logic operations that compose database and
ledger methods into financial workflows. Each workflow owns its atomic scope
(db.transaction()) and decides whether it commits.

Architecture:
- Database layer: Pure data access, ledger primitives, never commits on its own
- Services layer: Game service and payment gateway clients
- Operations layer: Validation, orchestration and commit decisions

Each operations module focuses on a specific domain:
- ChallengeOperations: Challenge creation and acceptance
- WithdrawalOperations: Outbound payments
- DepositOperations: Invoice bookkeeping
"""
