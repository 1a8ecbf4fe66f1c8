"""Reliability state-network generator for AND/OR composed systems."""
