"""Domain services backing the HTTP API and the accrual worker."""
