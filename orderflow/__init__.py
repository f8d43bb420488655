"""Orderflow service-order backend."""
