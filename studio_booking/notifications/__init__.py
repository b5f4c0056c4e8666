"""Notification dispatch for committed reservations"""
