"""
Provisioning module - creates (or links) the login identity of a cleared
applicant exactly once, with safe retry after partial failure.

API Endpoints:
- POST /provisioning/accounts - Provision an account
- GET /provisioning/applications/{id}/records - Attempt history
"""
