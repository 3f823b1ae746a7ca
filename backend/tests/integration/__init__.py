"""Integration tests for photo moment curation.

These tests run the complete pipeline over synthetic photo days:
- Feature lookup through a provider
- Clustering, ranking and cluster quality metrics
- Sub-cluster detection
- JSON export and cancellation
"""
