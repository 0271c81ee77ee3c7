"""Core domain modules.

This package contains the building blocks of the balance tracker:

- balances: normalization, baseline selection, diffing, retention, transfers
- upstream: HTTP client for the balance and transfer source
- persistence: persistence boundary (interfaces)
- storage: concrete snapshot stores (in-memory, PostgreSQL)
- scheduler: the two periodic ticks and the shared current result
"""
