"""
Test Tools Package
Tests for the pure scheduling and adherence algorithms
"""
