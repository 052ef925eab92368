"""Pricing domain - visit pricing, travel fees and the membership plan catalog"""
