"""
Infrastructure Layer
=====================

Low-level technical concerns shared across modules:
- Logging setup
- Request guard stores (rate limit, dedupe)
- Slack delivery with circuit breaker
- Background scheduling
- Rules file loading and hot reload
"""
