"""
provider-failover test suite.

This package contains tests for provider-failover:
- Backoff calculation tests
- Store locking and persistence tests
- Cooldown tracker tests
- Failure classification and candidate tests
- Fallback engine tests (sync and async)
"""
