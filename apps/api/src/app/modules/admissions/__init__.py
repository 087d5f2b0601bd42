"""
Admissions Module

The application store and its three status axes, plus the operations that
move an applicant from submission to a registered trainee.

API Endpoints:
- POST /admissions/applications - Submit new application (public)
- GET /admissions/applications/{id} - Application detail
- POST /admissions/applications/{id}/screen - Academic screening decision
- POST /admissions/applications/{id}/reject - Close an unqualified application
- POST /admissions/applications/{id}/application-fee - Raise a missing application fee
- POST /admissions/applications/{id}/register - Register against a qualification
- POST /admissions/applications/{id}/finalize-enrollment - Finalize enrollment
"""
