"""
Performance Tests.

Throughput of the full funnel with mock providers and no pacing:
    - 500 leads < 5 seconds
"""
