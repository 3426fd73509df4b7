"""Enclave Query Tools: memory-bounded SQL over remote parquet datasets.

Runs researcher SQL with DuckDB against partitioned parquet data in S3 while
keeping the worker process inside a fixed memory budget.
"""

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
