"""Prometheus exporter for DSMR P1 smart meter telegrams."""

__version__ = "0.1.0"
