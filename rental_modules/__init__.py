"""
Rental billing domain modules.

- lease: lease lifecycle manager and lease balance calculator
- invoicing: invoice ledger and invoice item manager
- payments: payment allocation ledger
"""
