"""
Tests for the Puzzle Flows package.

This package contains tests for:
- Transaction classification (UTXO and account chains)
- Event merging and truncation
- Explorer adapters, retries and rate limiting
- Cache store and collection documents
- Orchestration and CLI wiring
"""
