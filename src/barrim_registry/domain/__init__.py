"""Domain layer for the Barrim registry.

Contains entity records, value objects, pure lifecycle/ledger rules and
domain events. This layer has no dependencies on infrastructure concerns.
"""
