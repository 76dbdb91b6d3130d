"""
Stock modules: transaction-owning services over the stock kernel.

- ``inventory``: adjustments, transfers, opname, reads.
- ``rejected``: quarantine disposal and restoration.
"""
