"""
Fees module - the fee/clearance ledger and the Clearance Processor.

API Endpoints:
- GET /fees/entries - List obligations of an application or trainee
- GET /fees/entries/{id} - Ledger entry with its payment history
- POST /fees/entries/{id}/payments - Record a payment (ClearPayment)
"""
