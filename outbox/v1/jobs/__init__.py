"""
Outbox job queue.

Durable record of side effects that must eventually happen:
- Postgres-backed `outbox` table as the only source of queue state
- Lease-based claiming via single-row conditional updates
- Registry-based pluggable handlers with a bounded execution timeout
- Exponential backoff retries with at-least-once delivery
"""
