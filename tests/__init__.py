"""
Test suite for SmartQueue.

Contains unit and integration tests for booking, token assignment
and live queue tracking.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
