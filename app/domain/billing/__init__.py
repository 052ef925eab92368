"""Billing domain - payment reconciliation and membership sync"""
