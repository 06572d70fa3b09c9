#!/usr/bin/env python3
"""
Test suite for the notification configuration store and matcher engine.

All tests run without external services:

    # Run all tests
    python -m pytest tests/ -v

    # Using unittest
    python -m unittest discover tests -v
"""
