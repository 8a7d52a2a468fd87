"""
Data lake sync for tenant-scoped entity records.

This package plans per-tenant extraction windows, fans them out through SQS,
and dumps each window from the operational store into the raw tier of the
data lake as gzip-compressed NDJSON parts.
"""
