"""Pricing and settings consistency core for the equipment rental marketplace."""
