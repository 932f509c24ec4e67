"""Clinic appointments API"""
