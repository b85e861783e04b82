"""
Ledger modules: the business areas that feed the journal ledger.

    receivables  installment schedules and cascading payments
    revenue      revenue records and the revenue-to-ledger bridge
"""
