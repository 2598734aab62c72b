"""Tests for the Skate engine."""
