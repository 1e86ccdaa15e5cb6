"""
Load Layer - Report Delivery

Transmits the coverage report to the aggregation backend.
- One negotiation request, one storage upload
- No automatic retries; a failed upload fails the run
"""
