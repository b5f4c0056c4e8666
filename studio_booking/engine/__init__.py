"""Booking reservation and availability engine"""
