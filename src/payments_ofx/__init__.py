"""
payments-ofx: PayPal / Stripe transactions as OFX 1.02 bank statements.

Pipeline:
1. Provider source fetches transactions and the ending balance for [start, end)
2. Transactions are normalized into a provider-agnostic model
3. The assembler renders statement entries (net or gross fees) as OFX
"""

__version__ = "0.1.0"
