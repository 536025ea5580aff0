"""Retail Management System authentication API."""
