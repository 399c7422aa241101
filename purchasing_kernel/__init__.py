"""
Purchasing Kernel

Approval and settlement core for purchase payment orders:
- Form lifecycle state machine (approval and cancellation)
- Available-balance accounting for invoices, down payments and returns
- Declared-totals reconciliation and over-allocation checks
- Journal balance verification before an order is committed
"""

__version__ = "0.1.0"
