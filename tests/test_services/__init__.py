"""
Test Services Package
Tests for services backed by the SQLAlchemy repository
"""
