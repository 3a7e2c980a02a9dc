"""
Backend Scripts Module

This module contains utility scripts for store operations and maintenance.

Available scripts:
    - seed_data.py: Registers sample assets for testing
    - check_consistency.py: Reports asset locks that disagree with pending workflows

Usage:
    python -m scripts.seed_data
    python -m scripts.check_consistency
"""
