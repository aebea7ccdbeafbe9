"""Shared building blocks used across the lifecycle engine and clients."""
