"""Curve-priced token distribution with linear vesting."""
