"""Payment Allocation Ledger: applies payments to invoices."""
