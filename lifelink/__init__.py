"""Donor/request matching, eligibility and donation lifecycle core."""
