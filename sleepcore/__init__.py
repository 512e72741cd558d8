"""Core domain logic for the grace-window sleep alarm.

This package contains the sleep state machine and the services around it,
isolated from platform timers and sensors for easy testing and reasoning.
"""
