"""Flashloan-funded leverage and deleverage of lending positions."""
