"""Utility modules for the Social Graph Service."""
