"""Tests for the in-storage cache."""
