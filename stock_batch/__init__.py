"""
stock_batch -- Background batch processing and job scheduling.

Runs bulk work (demand normalization over every product, expiry scans,
closed-alert retention) on an owned, fixed-size worker pool.  Each item runs
in its own committed unit of work through the replenishment facade, so one
failing product never rolls back another.

Architecture:
    stock_batch/ is a top-level package.  Nothing in stock_kernel/ or
    stock_services/ imports from stock_batch.

Invariants:
    - One unit of work per item (independent commit).
    - Per-item errors are recorded, never raised; infrastructure errors
      abort the run.
    - Schedule evaluation is pure.
    - Shutdown drains: in-flight items finish, queued items are cancelled.
"""
