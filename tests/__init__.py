"""
Test Suite for the Quote Analytics Workbench

Includes:
- Unit tests for window resolvers and formulas
- Integration tests for the ingestion pipeline and CLI
- Golden fixtures for request normalization
"""
