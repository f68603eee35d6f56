"""Invoice Ledger and Invoice Item Manager."""
