"""Domain packages: scheduling, doctors, appointments"""
